import json

from tubemp3.utils.structured_logger import create_structured_logger


def test_json_lines_are_written(tmp_path):
    base, jobs, service = create_structured_logger(log_dir=tmp_path, enable_json=True)
    with base:
        service.service_started("0.0.0.0", 3000, "/tmp/work", 4)
        jobs.job_started("job1", "https://youtu.be/abc123")
        jobs.job_failed("job1", "transcoding", "transcode", "bad stream")

    (log_file,) = tmp_path.glob("tubemp3_*.jsonl")
    entries = [json.loads(line) for line in log_file.read_text().splitlines()]

    assert [e["event"] for e in entries] == ["service_started", "job_started", "job_failed"]
    assert entries[2]["level"] == "ERROR"
    assert entries[2]["kind"] == "transcode"
    assert all("session_id" in e for e in entries)


def test_json_disabled_without_log_dir():
    base, jobs, _ = create_structured_logger(log_dir=None, enable_json=True)

    assert base.enable_json is False
    jobs.job_started("job1", "u")
    base.close()
