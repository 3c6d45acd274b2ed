import json
import shutil
import tomllib

from typer.testing import CliRunner

from solguard.cli import app

runner = CliRunner()


def run_cli(*args: str):
    return runner.invoke(app, list(args))


def test_list_rules():
    result = run_cli("list-rules")
    assert result.exit_code == 0
    assert "Available Rules" in result.output


def test_scan_json_output(tmp_path, monkeypatch, fixtures_dir):
    monkeypatch.chdir(tmp_path)
    shutil.copy(fixtures_dir / "vulnerable_bank.json", tmp_path / "bank.json")
    findings_path = tmp_path / "findings.json"

    result = run_cli("scan", str(tmp_path / "bank.json"), "--json", str(findings_path))
    assert result.exit_code == 0
    assert findings_path.exists()
    data = json.loads(findings_path.read_text())

    meta = data["meta"]
    assert meta["contracts"] == 1
    assert meta["total_findings"] == 5
    assert len(meta["config_hash"]) == 64

    report = data["reports"][0]
    assert report["meta"]["contract_name"] == "VulnerableBank"
    finding = report["findings"][0]
    assert finding["rule_id"] == "MISSING_ACCESS_CONTROL"
    assert finding["severity"] == "CRITICAL"
    assert finding["function_name"] == "withdraw"


def test_scan_directory_with_rule_selection(tmp_path, monkeypatch, fixtures_dir):
    monkeypatch.chdir(tmp_path)
    inputs = tmp_path / "contracts"
    inputs.mkdir()
    shutil.copy(fixtures_dir / "vulnerable_bank.json", inputs / "a.json")
    shutil.copy(fixtures_dir / "fixed_bank.json", inputs / "b.json")
    findings_path = tmp_path / "findings.json"

    result = run_cli("scan", str(inputs), "--rule", "REENTRANCY", "--json", str(findings_path))
    assert result.exit_code == 0
    data = json.loads(findings_path.read_text())
    assert data["meta"]["contracts"] == 2
    assert data["meta"]["total_findings"] == 1
    assert [r["meta"]["rules_run"] for r in data["reports"]] == [["REENTRANCY"], ["REENTRANCY"]]


def test_fail_on_severity_gate(tmp_path, monkeypatch, fixtures_dir):
    monkeypatch.chdir(tmp_path)
    vulnerable = run_cli("scan", str(fixtures_dir / "vulnerable_bank.json"), "--fail-on-severity", "HIGH")
    fixed = run_cli("scan", str(fixtures_dir / "fixed_bank.json"), "--fail-on-severity", "HIGH")

    assert vulnerable.exit_code == 1
    assert fixed.exit_code == 0


def test_disabled_rules_clear_gate(tmp_path, monkeypatch, fixtures_dir):
    monkeypatch.chdir(tmp_path)
    result = run_cli(
        "scan", str(fixtures_dir / "vulnerable_bank.json"),
        "--disable", "category:access", "--disable", "REENTRANCY",
        "--fail-on-severity", "CRITICAL",
    )
    assert result.exit_code == 0


def test_scan_missing_target(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    result = run_cli("scan", str(tmp_path / "nope.json"))
    assert result.exit_code == 2


def test_scan_malformed_inputs(tmp_path, monkeypatch, fixtures_dir):
    monkeypatch.chdir(tmp_path)
    assert run_cli("scan", str(fixtures_dir / "malformed.json")).exit_code == 2
    result = run_cli("scan", str(fixtures_dir / "undeclared.json"))
    assert result.exit_code == 2
    assert "MalformedInputError" in result.output


def test_scan_respects_config_file(tmp_path, monkeypatch, fixtures_dir):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "solguard.toml").write_text(
        '[analysis]\nseverity_threshold = "CRITICAL"\n\n[output]\njson_file = "out.json"\n'
    )
    result = run_cli("scan", str(fixtures_dir / "vulnerable_bank.json"))
    assert result.exit_code == 0

    data = json.loads((tmp_path / "out.json").read_text())
    severities = {f["severity"] for f in data["reports"][0]["findings"]}
    assert severities == {"CRITICAL"}


def test_json_format_writes_only_json_to_stdout(tmp_path, monkeypatch, fixtures_dir):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SOLGUARD_OUTPUT_FORMAT", "json")
    result = run_cli("scan", str(fixtures_dir / "vulnerable_bank.json"))
    assert result.exit_code == 0

    assert "VulnerableBank findings" not in result.stdout
    data = json.loads(result.stdout[result.stdout.index("{"):])
    assert data["meta"]["total_findings"] == 5
    assert data["reports"][0]["meta"]["contract_name"] == "VulnerableBank"


def test_explain_selector():
    result = run_cli("explain-selector", "category:reentrancy")
    assert result.exit_code == 0
    assert "REENTRANCY" in result.output
    assert "1 rule(s)" in result.output


def test_init_config(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    result = run_cli("init-config")
    assert result.exit_code == 0

    with open(tmp_path / "solguard.toml", "rb") as f:
        data = tomllib.load(f)
    assert data["analysis"]["enabled_rules"] == ["*"]

    assert run_cli("init-config").exit_code == 1
    assert run_cli("init-config", "--force").exit_code == 0
