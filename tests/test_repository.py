"""
tests/test_repository.py

Match repository: optimistic updates, status queries, and the JSON file
store's load/persist cycle.
"""

import json

import pytest

from arenasettle.core.exceptions import ConfigError
from arenasettle.core.models import (
    EscrowState,
    IssueKind,
    MatchRecord,
    MatchStatus,
    SettlementIssue,
)
from arenasettle.repository import InMemoryMatchRepository, JsonFileMatchRepository

from helpers.fakes import make_record, new_player


@pytest.fixture
def record():
    return make_record("m-1", new_player(), new_player(), MatchStatus.TIED)


class TestInMemory:

    def test_update_bumps_version(self, record):
        repo = InMemoryMatchRepository([record])
        result = repo.update("m-1", {"on_chain_settled": True}, expected_version=0)
        assert result.ok
        assert result.record.version == 1
        assert repo.get("m-1").on_chain_settled is True

    def test_stale_version_loses_the_race(self, record):
        repo = InMemoryMatchRepository([record])
        repo.update("m-1", {"on_chain_settled": True}, expected_version=0)

        result = repo.update("m-1", {"escrow_state": EscrowState.REFUNDED}, expected_version=0)

        assert not result.ok
        assert result.conflict
        assert result.record.version == 1
        assert repo.get("m-1").escrow_state == EscrowState.LOCKED

    def test_unconditional_update(self, record):
        repo = InMemoryMatchRepository([record])
        result = repo.update("m-1", {"escrow_state": EscrowState.REFUNDED})
        assert result.ok
        assert result.record.version == 1

    def test_unknown_match_raises(self):
        with pytest.raises(KeyError):
            InMemoryMatchRepository().update("nope", {"on_chain_settled": True})

    def test_unknown_field_rejected(self, record):
        repo = InMemoryMatchRepository([record])
        with pytest.raises(ValueError, match="Unknown"):
            repo.update("m-1", {"payout": 5})

    def test_version_is_repository_owned(self, record):
        repo = InMemoryMatchRepository([record])
        with pytest.raises(ValueError, match="maintained by the repository"):
            repo.update("m-1", {"version": 9})

    def test_query_by_status(self):
        p1, p2 = new_player(), new_player()
        repo = InMemoryMatchRepository([
            make_record("a", p1, p2, MatchStatus.TIED),
            make_record("b", p1, p2, MatchStatus.ACTIVE),
            make_record("c", p1, p2, MatchStatus.CANCELLED),
        ])
        found = repo.query_by_status(["tied", MatchStatus.CANCELLED])
        assert sorted(r.match_id for r in found) == ["a", "c"]


class TestJsonFile:

    def test_missing_file_is_empty(self, tmp_path):
        repo = JsonFileMatchRepository(tmp_path / "matches.json")
        assert repo.all() == []

    def test_put_persists_across_instances(self, tmp_path, record):
        path = tmp_path / "store" / "matches.json"
        JsonFileMatchRepository(path).put(record)

        reloaded = JsonFileMatchRepository(path)

        assert reloaded.get("m-1") == record

    def test_update_persists(self, tmp_path, record):
        path = tmp_path / "matches.json"
        repo = JsonFileMatchRepository(path)
        repo.put(record)
        issue = SettlementIssue(IssueKind.MISSING_PREREQUISITE, "no profile", players=(record.player1,))
        repo.update("m-1", {"settlement_issue": issue}, expected_version=0)

        reloaded = JsonFileMatchRepository(path).get("m-1")

        assert reloaded.version == 1
        assert reloaded.settlement_issue == issue

    def test_document_uses_camel_case(self, tmp_path, record):
        path = tmp_path / "matches.json"
        JsonFileMatchRepository(path).put(record)

        document = json.loads(path.read_text(encoding="utf-8"))

        stored = document["matches"][0]
        assert stored["matchId"] == "m-1"
        assert stored["onChainGameId"] == 1
        assert stored["escrowState"] == "locked"
        assert stored["settlementIssue"] is None

    def test_no_temp_file_left_behind(self, tmp_path, record):
        path = tmp_path / "matches.json"
        JsonFileMatchRepository(path).put(record)
        assert [p.name for p in tmp_path.iterdir()] == ["matches.json"]

    def test_failed_write_leaves_memory_unchanged(self, tmp_path, record, monkeypatch):
        path = tmp_path / "matches.json"
        repo = JsonFileMatchRepository(path)
        repo.put(record)

        def refuse(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr("arenasettle.repository.file.os.replace", refuse)
        with pytest.raises(OSError, match="disk full"):
            repo.update("m-1", {"on_chain_settled": True}, expected_version=0)
        with pytest.raises(OSError):
            repo.put(record.with_changes(match_id="m-2"))
        monkeypatch.undo()

        assert repo.get("m-1") == record
        assert repo.get("m-2") is None
        assert JsonFileMatchRepository(path).get("m-1") == record
        assert [p.name for p in tmp_path.iterdir()] == ["matches.json"]

        result = repo.update("m-1", {"on_chain_settled": True}, expected_version=0)
        assert result.ok
        assert JsonFileMatchRepository(path).get("m-1").on_chain_settled is True

    def test_invalid_json_is_config_error(self, tmp_path):
        path = tmp_path / "matches.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigError, match="not valid JSON"):
            JsonFileMatchRepository(path)

    def test_invalid_record_is_config_error(self, tmp_path):
        path = tmp_path / "matches.json"
        path.write_text(json.dumps({"matches": [{"matchId": "x", "status": "bogus"}]}),
                        encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid match record"):
            JsonFileMatchRepository(path)


class TestRecordSerialization:

    def test_round_trip_keeps_issue_and_enums(self, record):
        flagged = record.with_changes(
            settlement_issue=SettlementIssue(IssueKind.FATAL, "rejected", "custom program error: 0x1771"),
            escrow_state=EscrowState.REFUND_FAILED,
        )
        again = MatchRecord.from_dict(flagged.to_dict())
        assert again == flagged
        assert again.is_flagged_fatal

    def test_missing_optional_fields_take_defaults(self):
        record = MatchRecord.from_dict({
            "matchId": "m", "player1": "a", "player2": "b",
            "betAmount": 10, "status": "active",
        })
        assert record.escrow_state == EscrowState.AWAITING_DEPOSITS
        assert record.on_chain_game_id is None
        assert record.version == 0
