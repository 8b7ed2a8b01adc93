"""
Tests for the ado_collect.py command-line entry point.

Covers:
- --generate-config
- configuration errors exit with status 2
- early exit when no organization is available
- report printing and export for collected organizations
"""
import os
import sys
from unittest.mock import patch

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import ado_collect
from ado_inventory.config import generate_sample_config
from ado_inventory.models import OrganizationInventory, Project


def no_input(prompt):
    raise EOFError()


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """Empty working directory and home, no ADO_* variables."""
    for name in list(os.environ):
        if name.startswith('ADO_'):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv('HOME', str(tmp_path))
    monkeypatch.chdir(tmp_path)
    return tmp_path


def run(argv, **kwargs):
    kwargs.setdefault('input_fn', no_input)
    kwargs.setdefault('secret_fn', no_input)
    return ado_collect.main(argv, **kwargs)


class TestEarlyExit:
    """Tests for runs that stop before collection."""

    def test_generate_config(self, isolated, capsys):
        assert run(['--generate-config']) == 0
        assert capsys.readouterr().out.strip() == generate_sample_config().strip()

    def test_unknown_export_format(self, isolated, capsys):
        with patch.object(ado_collect, 'collect_organizations') as collect:
            assert run(['--organizations', 'contoso', '--export-format', 'Word']) == 2
        collect.assert_not_called()
        assert "Unknown export format 'Word'" in capsys.readouterr().err

    def test_missing_config_file(self, isolated):
        assert run(['--config', str(isolated / 'missing.yaml')]) == 2

    def test_non_positive_limit(self, isolated):
        assert run(['--organizations', 'contoso', '--work-item-limit', '0']) == 2

    def test_no_organizations_and_no_input(self, isolated, capsys):
        with patch.object(ado_collect, 'collect_organizations') as collect:
            assert run([]) == 0
        collect.assert_not_called()
        assert "No organizations to inventory" in capsys.readouterr().out

    def test_organization_without_token_falls_back_to_wizard(self, isolated, capsys):
        with patch.object(ado_collect, 'collect_organizations') as collect:
            assert run(['--organizations', 'contoso']) == 0
        collect.assert_not_called()
        out = capsys.readouterr().out
        assert "No organizations configured" in out
        assert "No organizations to inventory" in out


class TestCollection:
    """Tests for full runs with collection replaced."""

    def _inventory(self):
        return OrganizationInventory(
            organization="contoso",
            projects=[Project(organization="contoso", name="Web", id="p1")],
        )

    def test_report_printed(self, isolated, monkeypatch, capsys):
        monkeypatch.setenv('ADO_PAT', 'pat-from-env')
        with patch.object(ado_collect, 'collect_organizations',
                          return_value=[self._inventory()]) as collect:
            assert run(['--organizations', 'contoso', '--no-progress']) == 0

        credentials, config = collect.call_args[0]
        assert [(c.organization, c.token) for c in credentials] == [("contoso", "pat-from-env")]
        assert collect.call_args[1]['show_progress'] is False
        out = capsys.readouterr().out
        assert "Azure DevOps Inventory: contoso" in out
        assert "Exported:" not in out

    def test_options_reach_config(self, isolated, monkeypatch):
        monkeypatch.setenv('ADO_PAT', 'pat-from-env')
        with patch.object(ado_collect, 'collect_organizations', return_value=[]) as collect:
            run(['--organizations', 'contoso', '--basic', '--parallel', '4', '--timeout', '5',
                 '--api-version', '7.0', '--work-item-limit', '20'])

        config = collect.call_args[0][1]
        assert config.include_extended is False
        assert config.parallel_workers == 4
        assert config.timeout == 5.0
        assert config.api_version == '7.0'
        assert config.work_item_limit == 20

    def test_markdown_export(self, isolated, monkeypatch, capsys):
        monkeypatch.setenv('ADO_PAT', 'pat-from-env')
        prefix = str(isolated / 'reports' / 'ado')
        with patch.object(ado_collect, 'collect_organizations', return_value=[self._inventory()]), \
                patch.object(ado_collect, 'get_file_timestamp', return_value='20240501-101500'):
            assert run(['--organizations', 'contoso', '--export-format', 'markdown',
                        '--export-path', prefix]) == 0

        expected = f"{prefix}-20240501-101500-contoso.md"
        assert os.path.exists(expected)
        assert f"Exported: {expected}" in capsys.readouterr().out

    def test_interactive_flag_uses_wizard(self, isolated, monkeypatch):
        monkeypatch.setenv('ADO_PAT', 'pat-from-env')
        answers = iter(['fabrikam', 'n'])

        with patch.object(ado_collect, 'collect_organizations', return_value=[]) as collect, \
                patch.object(ado_collect, 'default_probe', return_value=lambda org, token: None):
            assert run(['--organizations', 'contoso', '--interactive'],
                       input_fn=lambda prompt: next(answers),
                       secret_fn=lambda prompt: 'typed-pat') == 0

        credentials = collect.call_args[0][0]
        assert [(c.organization, c.token) for c in credentials] == [("fabrikam", "typed-pat")]
