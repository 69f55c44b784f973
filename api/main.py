from fastapi import FastAPI, HTTPException
import json
from pathlib import Path
from scripts.worker_config import AUTOHIDE_RUN_REPORT_FILE
from utils.logger import get_logger

logger = get_logger(__name__)

app = FastAPI(title="Metric Autohide Status API", version="1.0.0")


def _load_run_report(path: Path) -> dict:
    try:
        with open(path, "r") as f:
            payload = json.load(f)
    except json.JSONDecodeError as e:
        logger.error(f"Autohide run report decode failed: {e}")
        raise HTTPException(status_code=503, detail="Run report corrupted")

    if not isinstance(payload, dict) or not isinstance(
        payload.get("recent_runs"), list
    ):
        raise HTTPException(status_code=503, detail="Invalid run report format")
    return payload


@app.get("/autohide/status")
def autohide_status():
    """
    마지막 autohide run 결과와 recent window 요약 반환
    - worker가 아직 한 번도 돌지 않았으면 503
    """
    path = AUTOHIDE_RUN_REPORT_FILE
    if not path.exists():
        raise HTTPException(status_code=503, detail="No autohide run recorded yet.")

    try:
        payload = _load_run_report(path)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Autohide status error: {e}")
        raise HTTPException(status_code=500, detail="Internal Server Error")

    runs = payload["recent_runs"]
    last_run = runs[-1] if runs else None
    response = {
        "updated_at": payload.get("updated_at"),
        "last_run": last_run,
        "summary": payload.get("summary", {}),
    }
    if last_run is not None and last_run.get("result") != "ok":
        response["warning"] = (
            "Last autohide run failed; it will be retried at the next daily firing."
        )
    return response


@app.get("/")
def health_check():
    return {"status": "ok"}
