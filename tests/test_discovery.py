import asyncio

import pytest

from agents_refactor import protocol
from agents_refactor.discovery import DiscoveryStatus, RelatedFileDiscovery
from agents_refactor.errors import RequestFailedError
from agents_refactor.gate import ProjectLoadGate

from conftest import FakeSession


def write(path, content=""):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return str(path)


def make_discovery(tmp_path, handlers, **kwargs):
    session = FakeSession(tmp_path, handlers)
    gate = ProjectLoadGate(session, assume_loaded_after=None)
    session.emit(protocol.PROJECT_LOADING_FINISH)
    kwargs.setdefault("retry_delay", 0.01)
    return RelatedFileDiscovery(session, gate, **kwargs), session


@pytest.mark.asyncio
async def test_opens_files_that_reference_the_target(tmp_path):
    target = write(tmp_path / "utils.ts", "export const x = 1;\n")
    main = write(tmp_path / "main.ts", "import { x } from './utils';\n")
    other = write(tmp_path / "other.ts", "import { x } from './utils';\n")
    discovery, session = make_discovery(tmp_path, {
        protocol.FILE_REFERENCES: {"refs": [{"file": main}, {"file": other}, {"file": target}]},
    })

    status = await discovery.discover(target)

    assert status == DiscoveryStatus(project_fully_loaded=True, scan_timed_out=False, opened=sorted([main, other]))
    assert {path for path, _ in session.opened} == {target, main, other}
    assert protocol.PROJECT_INFO not in session.commands()


@pytest.mark.asyncio
async def test_scans_for_files_the_project_does_not_know(tmp_path):
    target = write(tmp_path / "src" / "utils.ts")
    known = write(tmp_path / "src" / "known.ts")
    fresh = write(tmp_path / "src" / "nested" / "fresh.tsx")
    write(tmp_path / "src" / "types.d.ts")
    write(tmp_path / "node_modules" / "lib" / "index.ts")
    write(tmp_path / "dist" / "out.js")
    write(tmp_path / ".git" / "hook.js")
    write(tmp_path / "README.md")
    discovery, _ = make_discovery(tmp_path, {
        protocol.FILE_REFERENCES: {"refs": []},
        protocol.PROJECT_INFO: {
            "configFileName": str(tmp_path / "tsconfig.json"),
            "fileNames": [target, known],
        },
    })

    status = await discovery.discover(target)

    assert status.opened == [fresh]
    assert not status.scan_timed_out


@pytest.mark.asyncio
async def test_inferred_project_skips_scan(tmp_path):
    target = write(tmp_path / "utils.ts")
    write(tmp_path / "other.ts")
    discovery, _ = make_discovery(tmp_path, {
        protocol.FILE_REFERENCES: {"refs": []},
        protocol.PROJECT_INFO: {"configFileName": "", "fileNames": [target]},
    })

    status = await discovery.discover(target)

    assert status.opened == []


@pytest.mark.asyncio
async def test_retries_until_file_is_indexed(tmp_path):
    target = write(tmp_path / "utils.ts")
    main = write(tmp_path / "main.ts")
    attempts = []

    def file_references(arguments):
        attempts.append(arguments["file"])
        if len(attempts) < 3:
            raise RequestFailedError(protocol.FILE_REFERENCES, "No Project.")
        return {"refs": [{"file": main}]}

    discovery, _ = make_discovery(tmp_path, {protocol.FILE_REFERENCES: file_references})

    status = await discovery.discover(target)

    assert len(attempts) == 3
    assert status.opened == [main]


@pytest.mark.asyncio
async def test_gives_up_after_index_attempts(tmp_path):
    target = write(tmp_path / "utils.ts")

    def never_indexed(arguments):
        raise RequestFailedError(protocol.FILE_REFERENCES, "No Project.")

    discovery, session = make_discovery(
        tmp_path,
        {protocol.FILE_REFERENCES: never_indexed, protocol.PROJECT_INFO: None},
        index_attempts=2,
    )

    status = await discovery.discover(target)

    assert session.commands().count(protocol.FILE_REFERENCES) == 2
    assert status.opened == []


@pytest.mark.asyncio
async def test_empty_answers_wait_between_attempts(tmp_path):
    target = write(tmp_path / "utils.ts")
    discovery, session = make_discovery(
        tmp_path,
        {protocol.FILE_REFERENCES: None, protocol.PROJECT_INFO: None},
        index_attempts=3,
        retry_delay=0.05,
    )
    loop = asyncio.get_running_loop()

    started = loop.time()
    status = await discovery.discover(target)

    assert session.commands().count(protocol.FILE_REFERENCES) == 3
    assert loop.time() - started >= 0.14
    assert status.opened == []


@pytest.mark.asyncio
async def test_slow_server_times_out_without_failing(tmp_path):
    target = write(tmp_path / "utils.ts")

    async def slow(arguments):
        await asyncio.sleep(5)

    discovery, _ = make_discovery(tmp_path, {protocol.FILE_REFERENCES: slow}, timeout=0.1)

    status = await discovery.discover(target)

    assert status.scan_timed_out
    assert status.opened == []


@pytest.mark.asyncio
async def test_missing_target_is_not_an_error(tmp_path):
    discovery, session = make_discovery(tmp_path, {})

    status = await discovery.discover(str(tmp_path / "missing.ts"))

    assert status.opened == []
    assert session.requests == []


@pytest.mark.asyncio
async def test_status_reports_unloaded_project(tmp_path):
    target = write(tmp_path / "utils.ts")
    session = FakeSession(tmp_path, {protocol.FILE_REFERENCES: {"refs": []}})
    gate = ProjectLoadGate(session, assume_loaded_after=None)
    discovery = RelatedFileDiscovery(session, gate)

    status = await discovery.discover(target)

    assert not status.project_fully_loaded


def test_warning_message():
    clean = DiscoveryStatus(project_fully_loaded=True, scan_timed_out=False)
    assert RelatedFileDiscovery.build_warning_message(clean, "references") == ""

    indexing = DiscoveryStatus(project_fully_loaded=False, scan_timed_out=False)
    message = RelatedFileDiscovery.build_warning_message(indexing, "references")
    assert "still indexing" in message
    assert "Some references may have been missed." in message
    assert message.endswith("If results seem incomplete, try running the operation again.")

    timed_out = DiscoveryStatus(project_fully_loaded=True, scan_timed_out=True)
    message = RelatedFileDiscovery.build_warning_message(timed_out, "import updates")
    assert "File discovery timed out" in message
    assert "Import updates might be incomplete." in message
