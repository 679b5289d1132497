import pytest

from stepcalc import main
from stepcalc.main import _ENV_VARS


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for env_name in _ENV_VARS.values():
        monkeypatch.delenv(env_name, raising=False)
    monkeypatch.setattr(main, 'load_dotenv', lambda *args, **kwargs: False)


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item, call):
    outcome = yield
    report = outcome.get_result()
    if report.when == "call":
        print(f"TEST: {item.name} - {'PASSED' if report.passed else 'FAILED'}")
