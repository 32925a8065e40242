from unittest.mock import MagicMock, patch

from doc_scanner.run import main


def test_main_builds_worker_and_runs(tmp_path):
    cfg_path = tmp_path / "cfg.json"
    cfg_path.write_text('{"camera_name": "fromfile", "fps": 5}', encoding="utf-8")
    fake_worker = MagicMock()
    fake_worker.outputs = []
    fake_worker.run.return_value = "summary"

    argv = [
        "prog",
        "--config",
        str(cfg_path),
        "--fps",
        "12",
        "--dry-run",
        "--max-frames",
        "3",
        "--capture-after",
        "2",
    ]
    with patch("doc_scanner.run.ScannerWorker", return_value=fake_worker) as mock_worker, patch(
        "sys.argv", argv
    ), patch("doc_scanner.run.signal.signal"):
        assert main() == 0

    cfg = mock_worker.call_args.args[0]
    assert cfg.camera_name == "fromfile"
    assert cfg.fps == 12
    assert cfg.dry_run is True
    assert cfg.max_frames == 3
    fake_worker.run.assert_called_once()
    on_tick = fake_worker.run.call_args.args[0]
    assert on_tick is not None


def test_main_without_config_uses_defaults():
    fake_worker = MagicMock()
    fake_worker.outputs = []
    with patch("doc_scanner.run.ScannerWorker", return_value=fake_worker) as mock_worker, patch(
        "sys.argv", ["prog", "--device", "3"]
    ), patch("doc_scanner.run.signal.signal"):
        assert main() == 0

    cfg = mock_worker.call_args.args[0]
    assert cfg.device == 3
    assert cfg.dry_run is False
    fake_worker.run.assert_called_once_with(None)
