import pytest

from pathlib import Path

from descartes import DescartesManager, InMemoryLogger, ManualVerificationGame
from descartes.environment import DescartesConfig
from descartes.utils import ManualClock
from test_utils.stategraph import create_state_graph


START_TIME = 1_700_000_000


def pytest_addoption(parser):
    parser.addoption("--instance_graph", action="store_true")


@pytest.fixture
def instance_graph(request: pytest.FixtureRequest):
    return request.config.getoption("--instance_graph", False)


@pytest.fixture
def clock():
    return ManualClock(START_TIME)


@pytest.fixture
def li():
    return InMemoryLogger()


@pytest.fixture
def vg():
    return ManualVerificationGame()


@pytest.fixture
def config():
    return DescartesConfig()


@pytest.fixture
def manager(li, vg, clock, config, request: pytest.FixtureRequest, instance_graph: bool):
    manager = DescartesManager(li, vg, config=config, clock=clock)
    yield manager

    if instance_graph and len(manager.instances) > 0:
        # Create the "tests/graphs" directory if it doesn't exist
        path = Path("tests/graphs")
        path.mkdir(exist_ok=True)
        create_state_graph(manager, f"tests/graphs/{request.node.name}.html")


class TestReport:
    def __init__(self):
        self.sections = {}

    def write(self, section_name, content):
        if section_name not in self.sections:
            self.sections[section_name] = []
        self.sections[section_name].append(content)

    def finalize_report(self, filename):
        with open(filename, "w") as file:
            for section, contents in self.sections.items():
                file.write(f"## {section}\n")
                for content in contents:
                    file.write(content + "\n")
                file.write("\n")


@pytest.fixture(scope="session")
def report():
    report_obj = TestReport()
    yield report_obj
    report_obj.finalize_report("report.md")
