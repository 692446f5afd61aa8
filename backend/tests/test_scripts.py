"""
Command line entry points.
"""

import json

from paperhub.scripts import init_db, migrate


class TestMigrateCli:
    def test_complete_run(self, factory, new_paper, capsys):
        with factory.open_context("relational") as ctx:
            ctx.papers.create(new_paper())

        code = migrate.main(["--from", "postgres", "--to", "mongodb"], factory=factory)

        assert code == 0
        result = json.loads(capsys.readouterr().out)
        assert result["status"] == "complete"
        assert result["papers"]["migrated"] == 1

    def test_partial_run_exits_non_zero(self, factory, new_paper, capsys):
        with factory.open_context("relational") as ctx:
            for title in ("a", "b", "c"):
                ctx.papers.create(new_paper(title=title))

        code = migrate.main(["--from", "relational", "--to", "document", "--max-records", "1"], factory=factory)

        assert code == 1
        assert json.loads(capsys.readouterr().out)["status"] == "partial"

    def test_invalid_engines(self, factory):
        assert migrate.main(["--from", "relational", "--to", "relational"], factory=factory) == 1


class TestInitDb:
    def test_relational(self, settings, monkeypatch, capsys):
        monkeypatch.setattr(init_db, "Config", settings)

        assert init_db.main(["--engine", "relational"]) == 0
        assert "Relational schema initialized" in capsys.readouterr().out
