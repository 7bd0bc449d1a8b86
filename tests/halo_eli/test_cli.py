"""Tests for the halo-eli CLI."""

from __future__ import annotations

import hashlib
import hmac
import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from halo_eli import __version__
from halo_eli._receipts.canonicalize import canonical_json
from halo_eli.commands import halo_app
from halo_eli.transcript import normalize_to_transcript

runner = CliRunner()

HMAC_KEY = "valet-hmac-key"
TEXT = "The earth orbits the sun. This implies gravity is real."


def _json(result) -> dict:
    return json.loads(result.stdout)


@pytest.fixture
def valet_dir(tmp_path: Path) -> Path:
    """Upstream output directory with an HMAC-signed receipt.json."""
    run_dir = tmp_path / "valet-run"
    run_dir.mkdir()
    receipt = {"model": "m-1", "prompt": "Tell me about the earth.", "completion": TEXT}
    payload = canonical_json(normalize_to_transcript(receipt))
    receipt["hmac"] = hmac.new(HMAC_KEY.encode(), payload.encode(), hashlib.sha256).hexdigest()
    (run_dir / "receipt.json").write_text(json.dumps(receipt))
    (run_dir / "output.md").write_text("# report\n")
    return run_dir


@pytest.fixture
def checkpoint_env(monkeypatch, keypair):
    private_pem, public_pem = keypair
    monkeypatch.setenv("VALET_RECEIPT_HMAC_KEY", HMAC_KEY)
    monkeypatch.setenv("RECEIPT_SIGNING_KEY_PEM", private_pem)
    return private_pem, public_pem


class TestVersion:
    def test_version_json(self) -> None:
        result = runner.invoke(halo_app, ["version", "--json"])
        assert result.exit_code == 0
        data = _json(result)
        assert data["version"] == __version__
        assert "INFERENCE_LAUNDERING" in data["components"]["validator_rules"]

    def test_version_text(self) -> None:
        result = runner.invoke(halo_app, ["version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout


class TestTagValidate:
    def test_tag_json(self) -> None:
        result = runner.invoke(halo_app, ["tag", TEXT, "--json"])
        assert result.exit_code == 0
        ledger = _json(result)["ledger"]
        assert [c["type"] for c in ledger["claims"]] == ["FACT", "INFERENCE"]

    def test_tag_requires_input(self) -> None:
        result = runner.invoke(halo_app, ["tag", "--json"])
        assert result.exit_code == 3

    def test_tag_stdin(self) -> None:
        result = runner.invoke(halo_app, ["tag", "-", "--json"], input="So.")
        assert result.exit_code == 0
        assert _json(result)["ledger"]["sentence_count"] == 1

    def test_validate_pass(self, tmp_path: Path) -> None:
        tagged = runner.invoke(halo_app, ["tag", TEXT, "--json"])
        ledger_file = tmp_path / "ledger.json"
        ledger_file.write_text(tagged.stdout)
        result = runner.invoke(halo_app, ["validate", str(ledger_file), "--source", TEXT, "--json"])
        assert result.exit_code == 0
        assert _json(result)["passed"] is True

    def test_validate_fail(self, tmp_path: Path) -> None:
        tagged = runner.invoke(halo_app, ["tag", "So.", "--json"])
        ledger_file = tmp_path / "ledger.json"
        ledger_file.write_text(json.dumps(_json(tagged)["ledger"]))
        result = runner.invoke(halo_app, ["validate", str(ledger_file), "--source", "So.", "--json"])
        assert result.exit_code == 1
        assert [v["rule"] for v in _json(result)["violations"]] == ["INFERENCE_LAUNDERING"]

    def test_validate_non_string_type(self, tmp_path: Path) -> None:
        ledger_file = tmp_path / "ledger.json"
        ledger_file.write_text(json.dumps({"claims": [
            {"id": "c1", "type": ["FACT"], "text": "x", "span_refs": [[0, 25]]},
        ]}))
        result = runner.invoke(halo_app, ["validate", str(ledger_file), "--source", TEXT, "--json"])
        assert result.exit_code == 1
        assert [v["rule"] for v in _json(result)["violations"]] == ["INVALID_TYPE"]

    def test_validate_missing_file(self, tmp_path: Path) -> None:
        result = runner.invoke(halo_app, ["validate", str(tmp_path / "nope.json"), "--source", "x"])
        assert result.exit_code == 3


class TestSignVerify:
    def test_sign_then_verify(self, tmp_path: Path) -> None:
        out = tmp_path / "receipt.json"
        result = runner.invoke(halo_app, ["sign", TEXT, "--out", str(out)])
        assert result.exit_code == 0
        assert out.exists()

        result = runner.invoke(halo_app, ["verify", str(out), "--json"])
        assert result.exit_code == 0
        assert _json(result) == {"command": "verify", "status": "ok", "valid": True}

    def test_verify_tampered(self, tmp_path: Path) -> None:
        out = tmp_path / "receipt.json"
        runner.invoke(halo_app, ["sign", TEXT, "--out", str(out)])
        receipt = json.loads(out.read_text())
        receipt["response"] = receipt["response"].replace("sun", "moon")
        out.write_text(json.dumps(receipt))

        result = runner.invoke(halo_app, ["verify", str(out), "--json"])
        assert result.exit_code == 1
        assert _json(result)["reason"].startswith("response hash mismatch")

    def test_verify_not_an_object(self, tmp_path: Path) -> None:
        bad = tmp_path / "receipt.json"
        bad.write_text("[1, 2]")
        result = runner.invoke(halo_app, ["verify", str(bad), "--json"])
        assert result.exit_code == 3
        assert _json(result)["status"] == "error"


class TestKeygen:
    def test_keygen_creates_key(self, isolated_env: Path) -> None:
        result = runner.invoke(halo_app, ["keygen", "--json"])
        assert result.exit_code == 0
        data = _json(result)
        assert data["signer_id"] == "halo-local"
        assert (isolated_env / "keys" / "halo-local.pem").exists()

    def test_keygen_refuses_overwrite(self) -> None:
        runner.invoke(halo_app, ["keygen"])
        result = runner.invoke(halo_app, ["keygen", "--json"])
        assert result.exit_code == 3
        forced = runner.invoke(halo_app, ["keygen", "--force", "--json"])
        assert forced.exit_code == 0
        assert _json(forced)["replaced"] is True


class TestCheckpoint:
    def test_checkpoint_pass_writes_outputs(self, valet_dir: Path, checkpoint_env) -> None:
        result = runner.invoke(halo_app, ["checkpoint", str(valet_dir), "--json"])
        assert result.exit_code == 0, result.stdout
        report = _json(result)["report"]
        assert report["status"] == "PASS"

        out_dir = valet_dir / "halo_checkpoint"
        master = json.loads((out_dir / "master_receipt.json").read_text())
        evidence = json.loads((out_dir / "evidence_pack.json").read_text())
        written_report = json.loads((out_dir / "protocol_report.json").read_text())
        assert master["content_hash"] == evidence["content_hash"]
        assert written_report["status"] == "PASS"
        assert evidence["valet_source"]["source_receipt_file"] == "receipt.json"
        assert [f["file"] for f in evidence["valet_source"]["files"]] == ["output.md", "receipt.json"]

    def test_verify_checkpoint_roundtrip_and_tamper(self, valet_dir: Path, checkpoint_env) -> None:
        runner.invoke(halo_app, ["checkpoint", str(valet_dir)])

        result = runner.invoke(halo_app, ["verify-checkpoint", str(valet_dir), "--json"])
        assert result.exit_code == 0
        assert _json(result)["ok"] is True

        evidence_path = valet_dir / "halo_checkpoint" / "evidence_pack.json"
        evidence = json.loads(evidence_path.read_text())
        evidence["transcript"]["model"] = "m-2"
        evidence_path.write_text(json.dumps(evidence))

        result = runner.invoke(halo_app, ["verify-checkpoint", str(valet_dir / "halo_checkpoint"), "--json"])
        assert result.exit_code == 1
        assert _json(result)["reason"].startswith("content_hash mismatch")

    def test_checkpoint_with_keystore_key(self, valet_dir: Path, monkeypatch) -> None:
        monkeypatch.setenv("VALET_RECEIPT_HMAC_KEY", HMAC_KEY)
        runner.invoke(halo_app, ["keygen"])
        result = runner.invoke(halo_app, ["checkpoint", str(valet_dir), "--json"])
        assert result.exit_code == 0
        assert runner.invoke(halo_app, ["verify-checkpoint", str(valet_dir)]).exit_code == 0

    def test_hmac_failure(self, valet_dir: Path, checkpoint_env, monkeypatch) -> None:
        monkeypatch.setenv("VALET_RECEIPT_HMAC_KEY", "wrong-key")
        result = runner.invoke(halo_app, ["checkpoint", str(valet_dir), "--json"])
        assert result.exit_code == 1
        assert _json(result)["report"]["status"] == "FAIL"
        out_dir = valet_dir / "halo_checkpoint"
        assert (out_dir / "protocol_report.json").exists()
        assert not (out_dir / "master_receipt.json").exists()

    def test_missing_hmac_key(self, valet_dir: Path) -> None:
        result = runner.invoke(halo_app, ["checkpoint", str(valet_dir), "--json"])
        assert result.exit_code == 3
        assert "VALET_RECEIPT_HMAC_KEY" in _json(result)["error"]

    def test_missing_signing_key(self, valet_dir: Path, monkeypatch) -> None:
        monkeypatch.setenv("VALET_RECEIPT_HMAC_KEY", HMAC_KEY)
        result = runner.invoke(halo_app, ["checkpoint", str(valet_dir), "--json"])
        assert result.exit_code == 3
        assert "keygen" in _json(result)["error"]

    def test_no_receipt_file(self, tmp_path: Path, checkpoint_env) -> None:
        result = runner.invoke(halo_app, ["checkpoint", str(tmp_path), "--json"])
        assert result.exit_code == 3
        assert "No receipt JSON found" in _json(result)["error"]

    def test_not_a_directory(self, tmp_path: Path, checkpoint_env) -> None:
        result = runner.invoke(halo_app, ["checkpoint", str(tmp_path / "missing"), "--json"])
        assert result.exit_code == 3

    def test_verify_checkpoint_schema_failure(self, valet_dir: Path, checkpoint_env) -> None:
        runner.invoke(halo_app, ["checkpoint", str(valet_dir)])
        master_path = valet_dir / "halo_checkpoint" / "master_receipt.json"
        master = json.loads(master_path.read_text())
        del master["signature"]
        master_path.write_text(json.dumps(master))

        result = runner.invoke(halo_app, ["verify-checkpoint", str(valet_dir), "--json"])
        assert result.exit_code == 1
        data = _json(result)
        assert data["error"] == "schema_validation_failed"
        assert data["details"][0].startswith("master_receipt.(root): ")
