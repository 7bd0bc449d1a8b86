"""
halo-eli CLI commands: signed receipts and claim ledgers for LLM output.

Commands:
  halo-eli tag               - Tag a response into an ELI claim ledger
  halo-eli validate          - Validate a ledger against its source text
  halo-eli sign              - Sign a response into a HALO receipt
  halo-eli verify            - Verify a HALO receipt offline
  halo-eli keygen            - Generate a local Ed25519 checkpoint key
  halo-eli checkpoint        - Checkpoint an upstream output directory
  halo-eli verify-checkpoint - Verify a master receipt + evidence pack offline
  halo-eli version           - Show version info
"""

import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console()

halo_app = typer.Typer(
    name="halo-eli",
    help="Signed receipts and epistemic claim ledgers for LLM output",
    no_args_is_help=True,
)


def _output_json(data: Dict[str, Any], exit_code: Optional[int] = None) -> None:
    """Print structured JSON to stdout and exit.

    Exit codes:
    - 0: success (status == "ok")
    - 1: failed verification or validation (status == "failed")
    - 3: bad input (status == "error")

    Can be overridden with explicit exit_code parameter.
    """
    print(json.dumps(data, indent=2, default=str))
    if exit_code is not None:
        raise typer.Exit(exit_code)
    status = data.get("status", "ok")
    if status == "ok":
        raise typer.Exit(0)
    elif status == "failed":
        raise typer.Exit(1)
    else:
        raise typer.Exit(3)


def _bad_input(command: str, message: str, output_json: bool) -> None:
    if output_json:
        _output_json({"command": command, "status": "error", "error": message})
    console.print(f"[red]Error:[/] {message}")
    raise typer.Exit(3)


def _read_text_arg(command: str, text: Optional[str], file: Optional[str], output_json: bool) -> str:
    """Resolve response text from an argument, a file, or stdin ("-")."""
    if file:
        path = Path(file)
        if not path.is_file():
            _bad_input(command, f"File not found: {file}", output_json)
        return path.read_text(encoding="utf-8")
    if text == "-":
        return sys.stdin.read()
    if text is None:
        _bad_input(command, "Provide TEXT, '-' for stdin, or --file", output_json)
    return text


def _read_json_file(command: str, file: str, output_json: bool) -> Dict[str, Any]:
    from halo_eli.errors import IngestError
    from halo_eli.ingest import read_json_object

    path = Path(file)
    if not path.is_file():
        _bad_input(command, f"File not found: {file}", output_json)
    try:
        return read_json_object(path)
    except IngestError as exc:
        _bad_input(command, str(exc), output_json)


@halo_app.callback()
def main_callback(
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Log level (default: HALO_ELI_LOG_LEVEL or WARNING)",
    ),
    log_json: bool = typer.Option(False, "--log-json", help="Emit logs as JSON lines on stderr"),
):
    """Signed receipts and epistemic claim ledgers for LLM output."""
    from halo_eli.config import get_config
    from halo_eli.log import setup_logging

    setup_logging(
        level=log_level or get_config().log_level,
        format_style="json" if log_json else "text",
    )


@halo_app.command("tag")
def tag_cmd(
    text: Optional[str] = typer.Argument(None, help="Response text, or '-' for stdin"),
    file: Optional[str] = typer.Option(None, "--file", "-f", help="Read response text from a file"),
    output_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Split a response into sentences and classify each as a claim."""
    from halo_eli.tagger import tag_response

    response = _read_text_arg("tag", text, file, output_json)
    ledger = tag_response(response)

    if output_json:
        _output_json({"command": "tag", "status": "ok", "ledger": ledger.to_dict()})

    table = Table(show_header=True, header_style="bold", title=f"{ledger.sentence_count} claim(s)")
    table.add_column("Type", style="cyan")
    table.add_column("Span", justify="right")
    table.add_column("Text")
    for claim in ledger.claims:
        span = ", ".join(f"{s[0]}-{s[1]}" for s in claim.span_refs)
        table.add_row(claim.type, span, claim.text)
    console.print(table)


@halo_app.command("validate")
def validate_cmd(
    ledger_file: str = typer.Argument(..., help="Ledger JSON file (output of 'tag --json' or a bare ledger)"),
    source: Optional[str] = typer.Option(None, "--source", "-s", help="Source text the ledger was tagged from"),
    source_file: Optional[str] = typer.Option(None, "--source-file", help="Read source text from a file"),
    output_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Check a claim ledger against its source text."""
    from halo_eli.validator import validate_ledger

    data = _read_json_file("validate", ledger_file, output_json)
    ledger = data.get("ledger", data)
    source_text = _read_text_arg("validate", source, source_file, output_json)

    result = validate_ledger(ledger, source_text)

    if output_json:
        _output_json({
            "command": "validate",
            "status": "ok" if result.passed else "failed",
            **result.to_dict(),
        })

    if result.passed:
        console.print("[bold green]VALIDATION PASSED[/]")
        return

    table = Table(show_header=True, header_style="bold", title="Violations")
    table.add_column("Rule", style="red")
    table.add_column("Claim")
    table.add_column("Detail")
    for v in result.violations:
        table.add_row(v.rule, v.claim_id or "(none)", v.detail)
    console.print(table)
    raise typer.Exit(1)


@halo_app.command("sign")
def sign_cmd(
    text: Optional[str] = typer.Argument(None, help="Response text, or '-' for stdin"),
    file: Optional[str] = typer.Option(None, "--file", "-f", help="Read response text from a file"),
    out: Optional[str] = typer.Option(None, "--out", "-o", help="Write the receipt to this file"),
    output_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Sign a response into a HALO receipt (HMAC-SHA256, RECEIPT_SIGNING_KEY)."""
    from halo_eli.receipt import sign_response

    response = _read_text_arg("sign", text, file, output_json)
    receipt = sign_response(response)
    receipt_dict = receipt.model_dump()

    if out:
        Path(out).write_text(json.dumps(receipt_dict, indent=2) + "\n", encoding="utf-8")

    if output_json:
        _output_json({"command": "sign", "status": "ok", "receipt": receipt_dict})

    if out:
        console.print(f"[green]Receipt written:[/] {out}")
    else:
        print(json.dumps(receipt_dict, indent=2))


@halo_app.command("verify")
def verify_cmd(
    receipt_file: str = typer.Argument(..., help="HALO receipt JSON file"),
    output_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Verify a HALO receipt offline (hash, then HMAC signature)."""
    from halo_eli.receipt import verify_receipt

    receipt = _read_json_file("verify", receipt_file, output_json)
    result = verify_receipt(receipt)

    if output_json:
        _output_json({
            "command": "verify",
            "status": "ok" if result.valid else "failed",
            **result.to_dict(),
        })

    if result.valid:
        console.print(f"[bold green]RECEIPT VALID[/]  {receipt.get('id', '')}")
        return
    console.print(f"[bold red]RECEIPT INVALID[/]  {result.reason}")
    raise typer.Exit(1)


@halo_app.command("keygen")
def keygen_cmd(
    signer_id: str = typer.Option("halo-local", "--signer", help="Signer id for the key files"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing key"),
    output_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Generate an Ed25519 keypair in the local key store."""
    from halo_eli.keystore import get_default_keystore

    ks = get_default_keystore()
    existed = ks.has_key(signer_id)
    if existed and not force:
        _bad_input("keygen", f"Key already exists for signer '{signer_id}' (use --force)", output_json)

    ks.generate_key(signer_id)
    info = {
        "signer_id": signer_id,
        "fingerprint": ks.signer_fingerprint(signer_id),
        "key_path": str(ks.keys_dir / f"{signer_id}.pem"),
        "pub_path": str(ks.keys_dir / f"{signer_id}.pub.pem"),
        "replaced": existed,
    }

    if output_json:
        _output_json({"command": "keygen", "status": "ok", **info})

    console.print(Panel.fit(
        f"[bold green]KEY GENERATED[/]\n\n"
        f"Signer:       {signer_id}\n"
        f"Fingerprint:  {info['fingerprint'][:16]}...\n"
        f"Private key:  {info['key_path']}\n"
        f"Public key:   {info['pub_path']}",
        title="halo-eli keygen",
    ))


def _resolve_checkpoint_keys(signer_id: str):
    """(signing_pem, verify_pem) from the environment, else the local key store."""
    from halo_eli.config import get_config
    from halo_eli.keystore import get_default_keystore

    config = get_config()
    signing_pem = config.signing_key_pem
    verify_pem = config.verify_key_pem
    if signing_pem is None:
        ks = get_default_keystore()
        if ks.has_key(signer_id):
            signing_pem = ks.private_pem(signer_id)
            verify_pem = verify_pem or ks.public_pem(signer_id)
    return signing_pem, verify_pem


@halo_app.command("checkpoint")
def checkpoint_cmd(
    input_dir: str = typer.Argument(..., help="Upstream output directory containing receipt.json"),
    signer_id: str = typer.Option("halo-local", "--signer", help="Key store signer if no PEM is in the environment"),
    embed_public_key: bool = typer.Option(
        False, "--embed-public-key", help="Embed the public key in the master receipt metadata",
    ),
    output_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """
    Checkpoint an upstream output directory.

    Authenticates the upstream receipt (VALET_RECEIPT_HMAC_KEY), signs an
    Ed25519 master receipt, verifies it offline, and runs tamper self-tests.
    Writes halo_checkpoint/{master_receipt,evidence_pack,protocol_report}.json.
    """
    from halo_eli.config import get_config
    from halo_eli.errors import IngestError
    from halo_eli.ingest import (
        CHECKPOINT_DIRNAME,
        collect_source_files,
        pick_receipt_file,
        read_json_object,
        write_checkpoint_outputs,
    )
    from halo_eli.protocol import run_checkpoint_protocol

    in_path = Path(input_dir)
    try:
        source_files = collect_source_files(in_path)
    except IngestError as exc:
        _bad_input("checkpoint", str(exc), output_json)

    receipt_entry = pick_receipt_file(source_files)
    if receipt_entry is None:
        _bad_input(
            "checkpoint",
            "No receipt JSON found. Expected receipt.json or receipt*.json in input directory.",
            output_json,
        )

    try:
        receipt = read_json_object(in_path / receipt_entry["file"])
    except IngestError as exc:
        _bad_input("checkpoint", str(exc), output_json)

    hmac_key = get_config().upstream_hmac_key
    if not hmac_key:
        _bad_input("checkpoint", "VALET_RECEIPT_HMAC_KEY is required for HMAC verification.", output_json)

    signing_pem, verify_pem = _resolve_checkpoint_keys(signer_id)
    if not signing_pem:
        _bad_input(
            "checkpoint",
            "RECEIPT_SIGNING_KEY_PEM is not set and no local key exists (run 'halo-eli keygen').",
            output_json,
        )

    out_path = in_path / CHECKPOINT_DIRNAME
    outcome = run_checkpoint_protocol(
        receipt,
        hmac_key=hmac_key,
        signing_key_pem=signing_pem,
        verify_key_pem=verify_pem,
        source_dir=str(in_path),
        source_receipt_file=receipt_entry["file"],
        source_files=source_files,
        output_dir=str(out_path),
        embed_public_key=embed_public_key,
    )
    write_checkpoint_outputs(outcome, out_path)
    report = outcome.report

    if output_json:
        _output_json({
            "command": "checkpoint",
            "status": "ok" if report.passed else "failed",
            "report": report.to_dict(),
        })

    table = Table(show_header=True, header_style="bold", title=f"Checkpoint protocol: {report.status}")
    table.add_column("Check")
    table.add_column("Result", justify="center")
    table.add_column("Detail")
    for check in report.checks:
        mark = "[green]PASS[/]" if check.passed else "[red]FAIL[/]"
        table.add_row(check.name, mark, check.detail)
    console.print(table)
    console.print(f"Output: {out_path}")

    if not report.passed:
        raise typer.Exit(1)


@halo_app.command("verify-checkpoint")
def verify_checkpoint_cmd(
    path: str = typer.Argument(..., help="Checkpoint directory (or the directory that contains halo_checkpoint/)"),
    signer_id: str = typer.Option("halo-local", "--signer", help="Key store signer if no key is in the environment"),
    output_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Verify a master receipt against its evidence pack, fully offline."""
    from halo_eli.checkpoint import verify_checkpoint_offline
    from halo_eli.checkpoint_schema import validate_evidence_pack, validate_master_receipt
    from halo_eli.ingest import CHECKPOINT_DIRNAME, EVIDENCE_PACK_FILE, MASTER_RECEIPT_FILE

    checkpoint_dir = Path(path)
    if not (checkpoint_dir / MASTER_RECEIPT_FILE).is_file() and (checkpoint_dir / CHECKPOINT_DIRNAME).is_dir():
        checkpoint_dir = checkpoint_dir / CHECKPOINT_DIRNAME

    master = _read_json_file("verify-checkpoint", str(checkpoint_dir / MASTER_RECEIPT_FILE), output_json)
    evidence = _read_json_file("verify-checkpoint", str(checkpoint_dir / EVIDENCE_PACK_FILE), output_json)

    schema_errors = [f"master_receipt.{e}" for e in validate_master_receipt(master)]
    schema_errors += [f"evidence_pack.{e}" for e in validate_evidence_pack(evidence)]
    if schema_errors:
        if output_json:
            _output_json({
                "command": "verify-checkpoint",
                "status": "failed",
                "error": "schema_validation_failed",
                "details": schema_errors,
            })
        console.print("[red]Checkpoint files failed schema validation:[/]")
        for err in schema_errors:
            console.print(f"  {err}")
        raise typer.Exit(1)

    signing_pem, verify_pem = _resolve_checkpoint_keys(signer_id)
    result = verify_checkpoint_offline(
        master, evidence, verify_key_pem=verify_pem, signing_key_pem=signing_pem,
    )

    if output_json:
        _output_json({
            "command": "verify-checkpoint",
            "status": "ok" if result.ok else "failed",
            "receipt_id": master.get("receipt_id"),
            **result.to_dict(),
        })

    if result.ok:
        console.print(Panel.fit(
            f"[bold green]CHECKPOINT VERIFIED[/]\n\n"
            f"Receipt ID:    {master.get('receipt_id')}\n"
            f"Content hash:  {master.get('content_hash')}",
            title="halo-eli verify-checkpoint",
        ))
        return
    console.print(Panel.fit(
        f"[bold red]CHECKPOINT FAILED[/]\n\n"
        f"Receipt ID:  {master.get('receipt_id')}\n"
        f"Reason:      {result.reason}",
        title="halo-eli verify-checkpoint",
    ))
    raise typer.Exit(1)


@halo_app.command("version")
def show_version(
    output_json: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show halo-eli version and configuration."""
    from halo_eli import __version__
    from halo_eli.config import get_config
    from halo_eli.validator import INVALID_SPAN, RULES

    config = get_config()

    if output_json:
        _output_json({
            "command": "version",
            "status": "ok",
            "version": __version__,
            "home": str(config.home),
            "components": {
                "validator_rules": [*RULES, INVALID_SPAN],
                "checkpoint": "halo.master.v1 (Ed25519)",
            },
        })

    console.print(f"[bold]halo-eli {__version__}[/]")
    console.print("Signed receipts and epistemic claim ledgers for LLM output")
    console.print()
    console.print("Verify exit codes: 0/1/3 (pass / failed / bad input)")
    console.print(f"Home: {config.home}")
