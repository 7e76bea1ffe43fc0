import logging

from clusterforge.logging.log import init_logging


def test_init_logging_writes_trace_with_thread_names(tmp_path):
    run = init_logging(base_dir=tmp_path / "logs")
    try:
        run.logger.debug("extracting etcd archive")

        assert run.log_path.parent == tmp_path / "logs"
        assert run.log_path.name.startswith("clusterforge-")
        assert run.log_path.name.endswith(f"-{run.run_id[:8]}.log")
        assert run.events_path == tmp_path / "logs" / f"{run.run_id}.jsonl"

        for h in run.logger.handlers:
            h.flush()
        text = run.log_path.read_text()
        assert "extracting etcd archive" in text
        assert "| MainThread" in text
        assert f"run_id={run.run_id}" in text
    finally:
        for h in list(run.logger.handlers):
            h.close()
        run.logger.handlers.clear()


def test_init_logging_replaces_previous_handlers(tmp_path):
    first = init_logging(base_dir=tmp_path / "a")
    second = init_logging(base_dir=tmp_path / "b", verbose=True)
    try:
        assert first.logger is second.logger
        assert len(second.logger.handlers) == 2
        console = [h for h in second.logger.handlers if not isinstance(h, logging.FileHandler)]
        assert console[0].level == logging.DEBUG
    finally:
        for h in list(second.logger.handlers):
            h.close()
        second.logger.handlers.clear()
