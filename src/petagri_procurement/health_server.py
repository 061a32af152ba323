"""
Health check HTTP server for liveness and readiness probes

/health/live and /health/ready only touch the database file; /health adds
tender workflow counts when a Procurement instance is attached.
"""

import argparse
import sqlite3
from pathlib import Path
from typing import Any

from flask import Flask, Response, jsonify

from petagri_procurement import __version__
from petagri_procurement.kernel.logging import configure_logging, get_logger
from petagri_procurement.kernel.metrics import update_assignment_status_metrics
from petagri_procurement.kernel.settings import SettingsHolder

logger = get_logger(__name__)

SERVICE_NAME = "petagri-procurement"

app = Flask(__name__)

# Set by initialize_health_server()
_db_path: Path | None = None
_procurement: Any = None


def initialize_health_server(db_path: str | Path, procurement: Any = None) -> None:
    """
    Point the probes at a database and, optionally, a Procurement façade

    Args:
        db_path: SQLite database holding the event log
        procurement: Façade used for workflow counts on /health
    """
    global _db_path, _procurement
    _db_path = Path(db_path)
    _procurement = procurement
    logger.info("Health server initialized", db_path=str(_db_path))


@app.after_request
def add_security_headers(response: Response) -> Response:
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["Cache-Control"] = "no-store"
    return response


@app.route("/health/live", methods=["GET"])
def liveness() -> tuple[Response, int]:
    """Process is up"""
    return jsonify({"status": "alive", "service": SERVICE_NAME}), 200


@app.route("/health/ready", methods=["GET"])
def readiness() -> tuple[Response, int]:
    """
    Ready when the database file exists and the events table answers a query

    Returns 503 with a machine-readable ``reason`` otherwise.
    """
    if _db_path is None:
        logger.error("Readiness check failed: DB path not initialized")
        return jsonify({"status": "not_ready", "reason": "database_path_not_initialized"}), 503

    if not _db_path.exists():
        logger.error("Readiness check failed: DB file does not exist", db_path=str(_db_path))
        return (
            jsonify(
                {
                    "status": "not_ready",
                    "reason": "database_file_not_found",
                    "db_path": str(_db_path),
                }
            ),
            503,
        )

    try:
        conn = sqlite3.connect(str(_db_path), timeout=1.0)
        try:
            event_count = conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]
        finally:
            conn.close()
    except sqlite3.Error as e:
        logger.error("Readiness check failed: DB error", error=str(e))
        return (
            jsonify(
                {
                    "status": "not_ready",
                    "reason": "database_operational_error",
                    "error": str(e),
                }
            ),
            503,
        )

    logger.debug("Readiness check passed", event_count=event_count)
    return jsonify({"status": "ready", "database": "accessible", "event_count": event_count}), 200


def _database_health(db_path: Path) -> dict[str, Any]:
    conn = sqlite3.connect(str(db_path), timeout=1.0)
    try:
        event_count = conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]
        stream_count = conn.execute("SELECT COUNT(DISTINCT stream_id) FROM events").fetchone()[0]
        page_count = conn.execute("PRAGMA page_count").fetchone()[0]
        page_size = conn.execute("PRAGMA page_size").fetchone()[0]
    finally:
        conn.close()
    return {
        "status": "healthy",
        "path": str(db_path),
        "event_count": event_count,
        "stream_count": stream_count,
        "size_mb": round(page_count * page_size / (1024 * 1024), 2),
    }


@app.route("/health", methods=["GET"])
def detailed_health() -> tuple[Response, int]:
    """Database statistics plus open/closed/eligible assignment counts"""
    health_data: dict[str, Any] = {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": __version__,
    }

    if _db_path and _db_path.exists():
        try:
            health_data["database"] = _database_health(_db_path)
        except sqlite3.Error as e:
            logger.error("Database health check failed", error=str(e))
            health_data["database"] = {"status": "unhealthy", "error": str(e)}
            health_data["status"] = "degraded"
    else:
        health_data["database"] = {"status": "not_initialized"}
        health_data["status"] = "degraded"

    if _procurement is not None:
        try:
            stats = _procurement.stats()
        except Exception as e:
            logger.warning("Could not compute tender statistics", error=str(e))
            health_data["tender"] = {"status": "unavailable", "error": str(e)}
        else:
            update_assignment_status_metrics(
                stats["assignments"]["open"], stats["assignments"]["closed"]
            )
            health_data["tender"] = stats

    status_code = 200 if health_data["status"] == "healthy" else 503
    return jsonify(health_data), status_code


def run_health_server(port: int = 8080, debug: bool = False) -> None:
    logger.info("Starting health check server", port=port)
    app.run(host="0.0.0.0", port=port, debug=debug)


def main() -> None:
    settings = SettingsHolder.get()

    parser = argparse.ArgumentParser(description="Petagri Procurement health server")
    parser.add_argument("--db", type=Path, default=settings.db_path, help="Database path")
    parser.add_argument("--port", type=int, default=settings.health_port, help="Port to listen on")
    args = parser.parse_args()

    configure_logging(json_output=settings.json_logs, log_level=settings.log_level)

    # Imported here: the façade pulls in the whole tender package
    from petagri_procurement.procurement import Procurement

    initialize_health_server(args.db, Procurement(args.db))
    run_health_server(port=args.port)


if __name__ == "__main__":
    main()
