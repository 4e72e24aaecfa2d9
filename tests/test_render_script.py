"""Test the render_scene.py CLI end to end.

Tests for scripts/render_scene.py:
    - Scene and lines inputs render to PNG plus metadata.yaml
    - Command-line overrides reach the effective config
    - Invalid inputs and configs exit with code 1 and write nothing
    - Logging config from the renderer YAML is applied (file handler, context)

Run:
    pytest tests/test_render_script.py -v
"""

import importlib.util
from pathlib import Path

import numpy as np
import pytest
import yaml
from PIL import Image

from canvas2d import __version__
from canvas2d.utils import fs, hashing, logging_config

ROOT = Path(__file__).resolve().parent.parent
SCENES = ROOT / "configs" / "scenes"


def _load_script():
    spec = importlib.util.spec_from_file_location("render_scene", ROOT / "scripts" / "render_scene.py")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


render_scene = _load_script()


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture(autouse=True)
def clean_logging():
    yield
    logging_config.setup_logging(to_stderr=False, capture_warnings=False)
    logging_config.pop_context()


@pytest.fixture
def bad_scene(tmp_path):
    path = tmp_path / "bad.yaml"
    fs.atomic_yaml_dump({
        'schema': 'scene.v1',
        'width': 8,
        'height': 8,
        'contours': [{'type': 'stroke', 'start': [0, 0], 'color': [255, 255, 255, 255], 'points': [[4, 4]]}],
    }, path)
    return path


# ============================================================================
# SUCCESSFUL RENDERS
# ============================================================================

def test_render_scene_writes_png_and_metadata(tmp_path):
    out = tmp_path / "out" / "demo.png"
    assert render_scene.main(['--scene', str(SCENES / "demo_scene.yaml"), '--output', str(out)]) == 0

    with Image.open(out) as img:
        assert img.mode == "RGBA"
        assert img.size == (64, 64)

    meta = fs.load_yaml(out.parent / "metadata.yaml")
    assert meta['version'] == __version__
    assert meta['shape'] == [64, 64, 4]
    assert meta['image_sha256'] == hashing.sha256_file(out)
    assert meta['input_sha256'] == hashing.sha256_file(SCENES / "demo_scene.yaml")
    assert meta['config']['schema'] == "renderer.v1"
    assert meta['render_stats']['tiles'] == 1.0   # 64×64 with the shipped 64-pixel workgroups
    assert meta['elapsed_s'] >= 0.0
    assert meta['config_sha256'] == hashing.hash_dict(meta['config'])


def test_render_clears_input_context(tmp_path):
    out = tmp_path / "demo.png"
    assert render_scene.main(['--scene', str(SCENES / "demo_scene.yaml"), '--output', str(out)]) == 0
    assert 'input' not in logging_config.get_context()
    assert render_scene.main(['--scene', str(tmp_path / "nope.yaml"), '--output', str(out)]) == 1
    assert 'input' not in logging_config.get_context()


def test_config_hash_tracks_overrides(tmp_path):
    scene = str(SCENES / "demo_scene.yaml")
    assert render_scene.main(['--scene', scene, '--output', str(tmp_path / "a" / "x.png")]) == 0
    assert render_scene.main(['--scene', scene, '--output', str(tmp_path / "b" / "x.png"), '--workers', '2']) == 0
    first = fs.load_yaml(tmp_path / "a" / "metadata.yaml")['config_sha256']
    second = fs.load_yaml(tmp_path / "b" / "metadata.yaml")['config_sha256']
    assert first != second


def test_render_lines_with_overrides(tmp_path):
    out = tmp_path / "lines.png"
    argv = ['--lines', str(SCENES / "demo_lines.yaml"), '--output', str(out), '--samples', '2', '--workers', '3']
    assert render_scene.main(argv) == 0

    meta = fs.load_yaml(tmp_path / "metadata.yaml")
    assert meta['config']['samples_per_axis'] == 2
    assert meta['config']['workers'] == 3
    assert 0.0 < meta['coverage_fraction'] < 1.0

    with Image.open(out) as img:
        pixels = np.asarray(img)
    assert pixels.shape == (48, 48, 4)
    assert tuple(pixels[6, 6]) == (255, 255, 255, 255)   # ring
    assert tuple(pixels[15, 15]) == (0, 0, 0, 0)         # hole


def test_custom_config_and_log_file(tmp_path):
    log_file = tmp_path / "render.log"
    cfg_path = tmp_path / "renderer.yaml"
    cfg = yaml.safe_load((ROOT / "configs" / "renderer.v1.yaml").read_text())
    cfg['workgroup_size'] = 16
    cfg['blend_mode'] = 'over'
    cfg['logging'].update({'log_file': str(log_file), 'to_stderr': False})
    fs.atomic_yaml_dump(cfg, cfg_path)

    out = tmp_path / "over.png"
    argv = ['--scene', str(SCENES / "demo_scene.yaml"), '--output', str(out), '--config', str(cfg_path)]
    assert render_scene.main(argv) == 0

    meta = fs.load_yaml(tmp_path / "metadata.yaml")
    assert meta['config']['blend_mode'] == 'over'
    assert meta['render_stats']['tiles'] == 16.0

    log_text = log_file.read_text()
    assert "app=render input=demo_scene.yaml" in log_text
    assert "Scene: 64×64, 3 contour(s)" in log_text


# ============================================================================
# FAILURES
# ============================================================================

def test_invalid_scene_exits_1(tmp_path, bad_scene):
    out = tmp_path / "bad.png"
    assert render_scene.main(['--scene', str(bad_scene), '--output', str(out)]) == 1
    assert not out.exists()
    assert not (tmp_path / "metadata.yaml").exists()


def test_missing_input_exits_1(tmp_path):
    assert render_scene.main(['--scene', str(tmp_path / "nope.yaml"), '--output', str(tmp_path / "x.png")]) == 1


def test_invalid_override_exits_1(tmp_path):
    argv = ['--lines', str(SCENES / "demo_lines.yaml"), '--output', str(tmp_path / "x.png"), '--samples', '9']
    assert render_scene.main(argv) == 1


def test_scene_over_capacity_exits_1(tmp_path):
    cfg_path = tmp_path / "tiny.yaml"
    fs.atomic_yaml_dump({'schema': 'renderer.v1', 'command_capacity': 8}, cfg_path)
    argv = ['--scene', str(SCENES / "demo_scene.yaml"), '--output', str(tmp_path / "x.png"), '--config', str(cfg_path)]
    assert render_scene.main(argv) == 1


def test_input_is_required():
    with pytest.raises(SystemExit):
        render_scene.main(['--output', 'x.png'])
    with pytest.raises(SystemExit):
        render_scene.main(['--scene', 'a.yaml', '--lines', 'b.yaml', '--output', 'x.png'])
