# tests/test_cli.py

import json
import logging

import pytest

from cli import build_parser, load_config, main_cli
from helpers import make_frames, write_video


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    yield tmp_path

    # main_cli attaches file handlers under tmp_path to the root logger
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_fingerprint_handler", False):
            root.removeHandler(handler)
            handler.close()


def test_no_command_prints_help(capsys):
    assert main_cli([]) == 0
    assert "usage" in capsys.readouterr().out


def test_overrides_apply_to_config(workdir):
    args = build_parser().parse_args(
        ['--backend', 'memory', '--interval', '2', '--strategy', 'string',
         '--quick', '4', '-w', '1', '--no-progress', 'check', 'clip.avi']
    )
    config = load_config(args)

    assert config.cache.backend == 'memory'
    assert config.sampling.interval_seconds == 2.0
    assert config.similarity.strategy == 'string'
    assert config.quick_check_frames == 4
    assert config.n_workers == 1
    assert config.show_progress is False


def test_check_new_video(workdir, capsys):
    path = write_video(workdir / "clip.avi", make_frames(1, 30), fps=10.0)
    output = str(workdir / "result.json")

    code = main_cli(['--backend', 'memory', '--no-progress', 'check', path, '-o', output])

    assert code == 0
    assert "New video processed" in capsys.readouterr().out
    result = json.loads((workdir / "result.json").read_text())
    assert result['is_duplicate'] is False
    assert result['frame_count'] == 3
    assert (workdir / "logs" / "fingerprint.log").exists()


def test_compare_command(workdir, capsys):
    a = write_video(workdir / "a.avi", make_frames(1, 30), fps=10.0)
    b = write_video(workdir / "b.avi", make_frames(2, 30), fps=10.0)

    assert main_cli(['--backend', 'memory', '--no-progress', 'compare', a, a]) == 0
    assert "100.00% (duplicate)" in capsys.readouterr().out

    assert main_cli(['--backend', 'memory', '--no-progress', 'compare', a, b]) == 0
    assert "(different)" in capsys.readouterr().out


def test_missing_video_fails(workdir):
    assert main_cli(['--backend', 'memory', 'check', str(workdir / "missing.avi")]) == 1


def test_invalidate_command(workdir, capsys):
    assert main_cli(['--backend', 'memory', 'invalidate']) == 0
    assert "Removed 0 cached fingerprints" in capsys.readouterr().out


def test_generate_command(workdir, capsys):
    path = write_video(workdir / "clip.avi", make_frames(1, 20), fps=10.0)

    assert main_cli(['--backend', 'memory', '--no-progress', 'generate', path]) == 0
    assert "Stored 2 frame hashes under video:" in capsys.readouterr().out


def test_logging_handlers_point_at_current_run(workdir):
    main_cli(['--backend', 'memory', 'invalidate'])

    ours = [h for h in logging.getLogger().handlers if getattr(h, "_fingerprint_handler", False)]
    assert len(ours) == 3
    files = [h.baseFilename for h in ours if hasattr(h, "baseFilename")]
    assert files and all(f.startswith(str(workdir)) for f in files)
