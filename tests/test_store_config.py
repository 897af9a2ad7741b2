"""
Tests for the JSON store, runtime settings, the model helpers and the CLI.
"""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from content_autopilot import cli
from content_autopilot.config import DEFAULT_DATA_DIR, AutopilotSettings
from content_autopilot.errors import InvalidTriggerError
from content_autopilot.models import ContentDraft, DraftTrigger, LocationContext, RecheckTask, parse_iso
from content_autopilot.store import JsonAutopilotStore, StoreError

ORG = "org-001"
LOC = "loc-001"


# ===================================================================
# Store
# ===================================================================


class TestJsonAutopilotStore:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_drafts_persist_across_instances(self, store, tmp_path):
        draft = ContentDraft(org_id=ORG, location_id=LOC, trigger_id="ci-1", title="Hello")
        await store.insert_draft(draft)

        reopened = JsonAutopilotStore(tmp_path / "autopilot")
        loaded = await reopened.get_draft(draft.id)
        assert loaded == draft

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_list_drafts_filters(self, store):
        for status in ("draft", "approved", "archived"):
            await store.insert_draft(ContentDraft(org_id=ORG, location_id=LOC, status=status))
        await store.insert_draft(ContentDraft(org_id="org-other", location_id=LOC))

        assert len(await store.list_drafts(ORG)) == 3
        assert len(await store.list_drafts(ORG, include_archived=False)) == 2
        assert [d.status for d in await store.list_drafts(ORG, statuses=["approved"])] == ["approved"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_update_unknown_draft(self, store):
        with pytest.raises(StoreError):
            await store.update_draft(ContentDraft(org_id=ORG))

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_save_oauth_token_upserts(self, store):
        await store.save_oauth_token(ORG, "google", {"access_token": "a"})
        await store.save_oauth_token(ORG, "google", {"access_token": "b"})
        assert (await store.get_oauth_token(ORG))["access_token"] == "b"
        assert len(store._rows("oauth_tokens")) == 1

    @pytest.mark.unit
    def test_corrupt_table_reads_empty(self, tmp_path):
        (tmp_path / "content_drafts.json").write_text("{broken", encoding="utf-8")
        assert JsonAutopilotStore(tmp_path)._rows("content_drafts") == []

    @pytest.mark.unit
    def test_unknown_table(self, tmp_path):
        with pytest.raises(StoreError):
            JsonAutopilotStore(tmp_path).add_rows("users", [{}])

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_active_locations(self, store):
        store.add_rows("locations", [{"id": "loc-old", "org_id": ORG, "is_archived": True}])
        assert [r["id"] for r in await store.list_active_locations(ORG)] == [LOC]


# ===================================================================
# Models
# ===================================================================


class TestModels:

    @pytest.mark.unit
    def test_parse_iso_variants(self):
        expected = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)
        assert parse_iso("2026-03-15T12:00:00Z") == expected
        assert parse_iso("2026-03-15T12:00:00") == expected
        assert parse_iso(None) is None

    @pytest.mark.unit
    def test_draft_from_dict_ignores_unknown_columns(self):
        draft = ContentDraft.from_dict({"id": "d-1", "org_id": ORG, "legacy_column": 1})
        assert draft.id == "d-1"

    @pytest.mark.unit
    def test_trigger_validate(self):
        DraftTrigger("occasion", "occ-1", ORG, LOC).validate()
        with pytest.raises(InvalidTriggerError):
            DraftTrigger("competitor_gap", "ci-1", "", LOC).validate()
        with pytest.raises(InvalidTriggerError):
            DraftTrigger("competitor_gap", "ci-1", ORG, LOC, context=["bad"]).validate()

    @pytest.mark.unit
    def test_unknown_trigger_type_sorts_last(self):
        assert DraftTrigger("occasion", "o", ORG, LOC).priority == 99

    @pytest.mark.unit
    def test_location_context_defaults(self):
        ctx = LocationContext.from_row({"id": LOC})
        assert ctx.business_name == "Local Business"
        assert ctx.primary_category == "local business"

    @pytest.mark.unit
    def test_recheck_task_wire_shape(self):
        task = RecheckTask("d-1", LOC, "q", "2026-03-29T12:00:00+00:00")
        assert RecheckTask.from_json_dict(json.loads(json.dumps(task.to_json_dict()))) == task


# ===================================================================
# Settings
# ===================================================================


class TestSettings:

    @pytest.mark.unit
    def test_from_env(self, tmp_path):
        settings = AutopilotSettings.from_env({
            "ANTHROPIC_API_KEY": "sk-ant",
            "REDIS_URL": "redis://cache:6379/1",
            "AUTOPILOT_DATA_DIR": str(tmp_path),
            "HTTP_TIMEOUT": "12.5",
        })
        assert settings.anthropic_api_key == "sk-ant"
        assert settings.redis_url == "redis://cache:6379/1"
        assert settings.data_dir == tmp_path
        assert settings.http_timeout == 12.5
        assert settings.openai_api_key == ""

    @pytest.mark.unit
    def test_defaults(self):
        settings = AutopilotSettings.from_env({})
        assert settings.data_dir == DEFAULT_DATA_DIR
        assert settings.http_timeout == 30.0


# ===================================================================
# CLI
# ===================================================================


class TestCli:

    @pytest.fixture
    def settings(self, store, monkeypatch):
        settings = AutopilotSettings(data_dir=store.data_dir)
        monkeypatch.setattr(cli, "get_settings", lambda: settings)
        return settings

    @pytest.mark.unit
    def test_no_command_prints_help(self, capsys):
        assert cli.main([]) == 1
        assert "usage" in capsys.readouterr().out.lower()

    @pytest.mark.unit
    def test_sweep_org(self, settings, capsys):
        assert cli.main(["sweep-org", "--org-id", ORG]) == 0
        assert json.loads(capsys.readouterr().out)["processed"] == 1

    @pytest.mark.unit
    def test_approve_then_publish_download(self, store, settings, tmp_path, capsys):
        draft = ContentDraft(org_id=ORG, location_id=LOC, title="Hello", content="Bella Napoli is open.")
        store.add_rows("content_drafts", [draft.to_dict()])

        assert cli.main(["approve", "--draft-id", draft.id]) == 0
        out_file = tmp_path / "page.html"
        assert cli.main(["publish", "--draft-id", draft.id, "--out", str(out_file)]) == 0
        assert "<h1>Hello</h1>" in out_file.read_text(encoding="utf-8")
        capsys.readouterr()

    @pytest.mark.unit
    def test_recheck_backend_closed_after_publish(self, store, settings, monkeypatch, capsys):
        backend = MagicMock()
        backend.set = AsyncMock(return_value=True)
        backend.sadd = AsyncMock(return_value=True)
        backend.close = AsyncMock()
        monkeypatch.setattr(cli, "backend_from_url", lambda url: backend)
        draft = ContentDraft(org_id=ORG, location_id=LOC, title="Hello", content="x",
                             status="approved", human_approved=True, target_prompt="best pizza")
        store.add_rows("content_drafts", [draft.to_dict()])

        assert cli.main(["publish", "--draft-id", draft.id]) == 0
        backend.close.assert_awaited_once()
        backend.set.assert_awaited_once()
        capsys.readouterr()

    @pytest.mark.unit
    def test_recheck_backend_closed_on_failure(self, settings, monkeypatch, capsys):
        backend = MagicMock()
        backend.close = AsyncMock()
        monkeypatch.setattr(cli, "backend_from_url", lambda url: backend)
        assert cli.main(["approve", "--draft-id", "missing"]) == 1
        backend.close.assert_awaited_once()
        capsys.readouterr()

    @pytest.mark.unit
    def test_sweep_closes_text_generator(self, settings, monkeypatch, capsys):
        generator = MagicMock()
        generator.generate = AsyncMock(side_effect=RuntimeError("quota exceeded"))
        generator.close = AsyncMock()
        monkeypatch.setattr(cli, "AnthropicTextGenerator", lambda api_key: generator)
        settings.anthropic_api_key = "sk-ant"

        assert cli.main(["sweep-org", "--org-id", ORG]) == 0
        generator.close.assert_awaited_once()
        capsys.readouterr()

    @pytest.mark.unit
    def test_publish_unapproved_exits_2(self, store, settings, capsys):
        draft = ContentDraft(org_id=ORG, location_id=LOC, title="Hello", content="x")
        store.add_rows("content_drafts", [draft.to_dict()])
        assert cli.main(["publish", "--draft-id", draft.id]) == 2
        assert "action required" in capsys.readouterr().err

    @pytest.mark.unit
    def test_unknown_draft_exits_1(self, settings, capsys):
        assert cli.main(["archive", "--draft-id", "missing"]) == 1
        assert "Draft not found" in capsys.readouterr().err
