import os
import sys
import subprocess
import pytest
from unittest import mock

import run_analysis


@pytest.fixture
def mock_subprocess():
    with mock.patch('run_analysis.subprocess.run') as mock_run:
        yield mock_run

def _scripts(mock_run):
    return [os.path.basename(call.args[0][1]) for call in mock_run.call_args_list]

class TestExecuteScript:
    def test_success(self, mock_subprocess):
        assert run_analysis._execute_analysis_script('proximity_analysis.py', ['carceral', 0.5], 'x') is True
        cmd = mock_subprocess.call_args.args[0]
        assert cmd[0] == sys.executable
        assert cmd[1] == os.path.join(run_analysis.SCRIPT_DIR, 'proximity_analysis.py')
        assert cmd[2:] == ['carceral', '0.5']

    def test_failure(self, mock_subprocess):
        mock_subprocess.side_effect = subprocess.CalledProcessError(1, 'cmd')
        assert run_analysis._execute_analysis_script('enrich_datasets.py', [], 'x') is False

    def test_missing_interpreter(self, mock_subprocess):
        mock_subprocess.side_effect = FileNotFoundError()
        assert run_analysis._execute_analysis_script('enrich_datasets.py', [], 'x') is False

class TestWrappers:
    def test_proximity_arguments(self, mock_subprocess):
        run_analysis.run_proximity_analysis('carceral', ['pfas_known', 'pfas_suspected'], [0, 5],
                                            output_file='out.csv', by_category=True)
        cmd = mock_subprocess.call_args.args[0]
        assert cmd[2:] == ['carceral', 'pfas_known', 'pfas_suspected', '--thresholds', '0', '5',
                           '--output', 'out.csv', '--by-category']

    def test_enrichment_arguments(self, mock_subprocess):
        run_analysis.run_enrichment(['pfas_known'], batch_size=50, force=True)
        cmd = mock_subprocess.call_args.args[0]
        assert cmd[2:] == ['pfas_known', '--batch-size', '50', '--force']

    def test_permutation_arguments(self, mock_subprocess):
        run_analysis.run_permutation_test('carceral', ['pfas_known'], threshold=1, seed=3)
        cmd = mock_subprocess.call_args.args[0]
        assert cmd[2:] == ['permutation', 'carceral', 'pfas_known', '--threshold', '1',
                           '--n-permutations', '1000', '--seed', '3']

class TestResultsDirectory:
    def test_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv('WSX_RESULTS_DIR', str(tmp_path / "out"))
        assert run_analysis.get_results_directory() == str(tmp_path / "out")
        assert (tmp_path / "out").is_dir()

    def test_from_dotenv_file(self, tmp_path, monkeypatch):
        (tmp_path / ".env").write_text(f"WSX_RESULTS_DIR={tmp_path / 'dotenv_results'}\n")
        monkeypatch.chdir(tmp_path)
        with mock.patch.dict(os.environ):
            os.environ.pop('WSX_RESULTS_DIR', None)
            assert run_analysis.get_default_output_path('z.json') == str(tmp_path / "dotenv_results" / "z.json")

class TestFullPipeline:
    def test_runs_every_stage(self, mock_subprocess, tmp_path, monkeypatch):
        monkeypatch.setenv('WSX_RESULTS_DIR', str(tmp_path))
        assert run_analysis.run_full_pipeline(thresholds=[0]) is True

        scripts = _scripts(mock_subprocess)
        assert scripts[0] == 'enrich_datasets.py'
        assert scripts.count('proximity_analysis.py') == len(run_analysis.FACILITY_TABLES)
        # only the census-enriched facility tables get a permutation test
        assert scripts.count('statistical_tests.py') == 2

    def test_stops_after_failed_enrichment(self, mock_subprocess, tmp_path, monkeypatch):
        monkeypatch.setenv('WSX_RESULTS_DIR', str(tmp_path))
        mock_subprocess.side_effect = subprocess.CalledProcessError(1, 'cmd')
        assert run_analysis.run_full_pipeline() is False
        assert _scripts(mock_subprocess) == ['enrich_datasets.py']

    def test_skip_enrichment(self, mock_subprocess, tmp_path, monkeypatch):
        monkeypatch.setenv('WSX_RESULTS_DIR', str(tmp_path))
        run_analysis.run_full_pipeline(skip_enrichment=True)
        assert 'enrich_datasets.py' not in _scripts(mock_subprocess)

class TestMain:
    def test_exit_code_follows_stage(self, mock_subprocess):
        with mock.patch('sys.argv', ['run_analysis.py', 'proximity', 'carceral', 'pfas_known']):
            assert run_analysis.main() == 0
        mock_subprocess.side_effect = subprocess.CalledProcessError(2, 'cmd')
        with mock.patch('sys.argv', ['run_analysis.py', 'proximity', 'carceral', 'pfas_known']):
            assert run_analysis.main() == 1

    def test_no_command_prints_help(self, mock_subprocess, capsys):
        with mock.patch('sys.argv', ['run_analysis.py']):
            assert run_analysis.main() == 0
        assert 'usage' in capsys.readouterr().out
        mock_subprocess.assert_not_called()
