from __future__ import annotations

from pathlib import Path

from conftest import FakeSource

import fieldcheck.cli.__main__ as cli_module
from fieldcheck.cli.__main__ import main
from fieldcheck.logging.init import reset_logging
from fieldcheck.models.field_meta import ColumnMetadata
from fieldcheck.models.row_data import Record

"""Exit code contract: 0 clean, 1 fatal, 2 violations or rule issues."""


def test_exit_code_constants():
    assert (cli_module.EXIT_CLEAN, cli_module.EXIT_FATAL, cli_module.EXIT_VIOLATIONS) == (0, 1, 2)


def test_exit_code_fatal_startup(temp_workdir: Path, capsys):
    # no config file and no tokens -> exit 1
    reset_logging()
    code = main([])
    assert code == 1
    assert "ERROR config:" in capsys.readouterr().out


def test_exit_code_rule_issue(write_config, fake_source: FakeSource, monkeypatch, capsys):
    reset_logging()
    monkeypatch.setenv("FIELDCHECK_ACCESS_TOKEN", "t-abc")
    monkeypatch.setattr(cli_module, "RemoteSource", lambda *args, **kwargs: fake_source)
    table = fake_source.tables["tbl1"]
    table.records[2] = Record("recC", {"fldName": "Carol"})
    table.columns[1] = ColumnMetadata(id="fldNote", name="Note", description='{"validator": ')

    code = main([])
    out = capsys.readouterr().out
    assert code == 2
    assert "violations=0 issues=1" in out
    assert "WARN column 'Note'" in out
    reset_logging()
