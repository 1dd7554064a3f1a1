import pytest
from click.testing import CliRunner

from conftest import FakeGenerator, GOOD_BODY, chapter_output, seed_work

import serial_writer.generation as generation
from serial_writer.cli import cli
from serial_writer.generation import GenerationOrchestrator


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def sample_config(tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text(f"""
storage:
  data_dir: {tmp_path / "data"}
generator:
  backoff_seconds: 0
strategy:
  budget: 500
""")
    return config_file


@pytest.fixture
def scripted(monkeypatch):
    """Make ``run`` build its orchestrator around a scripted generator."""
    generators = []

    def install(responses):
        def factory(config, **kwargs):
            generator = FakeGenerator(responses)
            generators.append(generator)
            return GenerationOrchestrator(config, generator=generator, sleep=lambda s: None)

        monkeypatch.setattr(generation, "GenerationOrchestrator", factory)
        return generators

    return install


def test_cli_help(runner):
    result = runner.invoke(cli, ['--help'])
    assert result.exit_code == 0
    assert 'run' in result.output
    assert 'status' in result.output
    assert 'score' in result.output


def test_status_empty(runner, sample_config):
    result = runner.invoke(cli, ['-c', str(sample_config), 'status'])
    assert result.exit_code == 0
    assert 'Budget: 0.00/500.00' in result.output


def test_status_lists_works(runner, sample_config, store):
    seed_work(store, chapters=2)
    result = runner.invoke(cli, ['-c', str(sample_config), 'status'])
    assert result.exit_code == 0
    assert 'Moonlit' in result.output
    assert 'Budget:' in result.output


def test_score_file(runner, sample_config, tmp_path):
    chapter = tmp_path / "chapter.md"
    chapter.write_text(GOOD_BODY)
    result = runner.invoke(cli, ['-c', str(sample_config), 'score', str(chapter)])
    assert result.exit_code == 0
    assert 'plot' in result.output
    assert 'Composite' in result.output


def test_score_unknown_work(runner, sample_config, tmp_path):
    chapter = tmp_path / "chapter.md"
    chapter.write_text(GOOD_BODY)
    result = runner.invoke(cli, ['-c', str(sample_config), 'score', str(chapter), '--work', 'missing'])
    assert result.exit_code != 0


def test_run_dry_run(runner, sample_config, store, scripted):
    work_id = seed_work(store, chapters=3)
    generators = scripted([])
    result = runner.invoke(cli, ['-c', str(sample_config), 'run', '--force', 'continue',
                                 '--work', work_id, '--dry-run'])
    assert result.exit_code == 0
    assert 'continue' in result.output
    assert 'Stage:' in result.output
    assert generators[0].prompts == []
    assert store.load(work_id).current_chapter == 3


def test_run_commits_chapter(runner, sample_config, store, scripted):
    work_id = seed_work(store, chapters=3)
    scripted([chapter_output()])
    result = runner.invoke(cli, ['-c', str(sample_config), 'run', '--force', 'continue', '--work', work_id])
    assert result.exit_code == 0
    assert 'chapter 4' in result.output
    assert store.load(work_id).current_chapter == 4


def test_run_failure_exits_nonzero(runner, sample_config, scripted):
    scripted([])
    result = runner.invoke(cli, ['-c', str(sample_config), 'run', '--force', 'continue', '--work', 'missing'])
    assert result.exit_code != 0
    assert 'unknown work' in result.output


def test_unknown_signal_set_is_reported(runner, tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text(f"storage:\n  data_dir: {tmp_path / 'data'}\nsignal_set: klingon\n")
    chapter = tmp_path / "chapter.md"
    chapter.write_text(GOOD_BODY)
    result = runner.invoke(cli, ['-c', str(config_file), 'score', str(chapter)])
    assert result.exit_code == 1
    assert 'Signal set not found: klingon' in result.output
    assert not isinstance(result.exception, FileNotFoundError)
