"""
intake_server.py
Servidor Flask de recepcion de peticiones POST.
Aplica ventana deslizante + baneo temporal por IP y registra las peticiones aceptadas.

Variables de entorno:
    BAN_DURATION  segundos de baneo (60)
    LIMIT_COUNT   peticiones por ventana (4)
    LIMIT_WINDOW  segundos de la ventana (1)
    AUDIT_LOG     archivo de auditoria (./log.txt)
    HOST / PORT   direccion de escucha (0.0.0.0:8080)
    LOG_LEVEL     nivel de logging (INFO)
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime

from flask import Flask, request, jsonify
from werkzeug.exceptions import ClientDisconnected

from admission import AdmissionController, Decision
from audit_log import AuditLog, AuditRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    ban_duration: float = 60.0
    request_limit: int = 4
    time_window: float = 1.0
    audit_log: str = "./log.txt"
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"


def _env(environ, name, default, cast):
    raw = environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(f"valor invalido para {name}: {raw!r}") from None


def load_settings(environ=None):
    if environ is None:
        environ = os.environ
    return Settings(
        ban_duration=_env(environ, "BAN_DURATION", 60.0, float),
        request_limit=_env(environ, "LIMIT_COUNT", 4, int),
        time_window=_env(environ, "LIMIT_WINDOW", 1.0, float),
        audit_log=_env(environ, "AUDIT_LOG", "./log.txt", str),
        host=_env(environ, "HOST", "0.0.0.0", str),
        port=_env(environ, "PORT", 8080, int),
        log_level=_env(environ, "LOG_LEVEL", "INFO", str).upper(),
    )


def setup_logging(level="INFO"):
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )


def resolve_client_id(req):
    # X-Forwarded-For se toma tal cual, sin validar: un cliente puede falsificarlo
    ip = req.headers.get("X-Forwarded-For", "")
    if not ip:
        ip = req.remote_addr or ""
    return ip


def create_app(settings=None, controller=None, audit=None):
    if settings is None:
        settings = load_settings()
    if controller is None:
        controller = AdmissionController(
            ban_duration=settings.ban_duration,
            request_limit=settings.request_limit,
            time_window=settings.time_window,
        )
    if audit is None:
        audit = AuditLog(settings.audit_log)

    app = Flask(__name__)
    app.extensions["admission"] = controller
    app.extensions["audit_log"] = audit

    @app.errorhandler(405)
    def method_not_allowed(e):
        if request.path == "/":
            return jsonify({"error": "only POST requests are allowed"}), 405
        return jsonify({"error": "method not allowed"}), 405

    @app.route("/", methods=["POST"])
    def intake():
        ip = resolve_client_id(request)
        decision = controller.check(ip)
        if decision is Decision.FORBIDDEN:
            return jsonify({"error": "forbidden"}), decision.status_code
        if decision is Decision.TOO_MANY_REQUESTS:
            return jsonify({"error": "too many requests"}), decision.status_code

        try:
            body = request.get_data(cache=False)
        except (OSError, ClientDisconnected) as e:
            logger.error("No se pudo leer el cuerpo de %s: %s", ip, e)
            return jsonify({"error": "failed to read request body"}), 500
        # cuerpo truncado: el cliente corto antes de Content-Length
        expected = request.content_length
        if expected is not None and len(body) != expected:
            logger.error("Cuerpo incompleto de %s: %d de %d bytes", ip, len(body), expected)
            return jsonify({"error": "failed to read request body"}), 500

        # fuera del lock del controlador; un fallo aqui no cambia la respuesta
        audit.write(AuditRecord(client_id=ip, time=datetime.now().astimezone(), body=body))
        logger.info("Received request from %s: %s", ip, body.decode("utf-8", errors="replace"))
        return jsonify({"ok": True, "message": "Request received"}), 200

    @app.route("/health")
    def health():
        return jsonify({
            "status": "ok",
            "time_window": controller.time_window,
            "limit": controller.request_limit,
            "ban_duration": controller.ban_duration,
        })

    @app.route("/metrics")
    def metrics():
        snap = controller.snapshot()
        return jsonify({
            "clients_tracked": snap["clients_tracked"],
            "active_bans": snap["active_bans"],
            "window_seconds": controller.time_window,
            "limit": controller.request_limit,
            "ban_duration": controller.ban_duration,
        })

    return app


app = create_app()


def main():
    settings = load_settings()
    setup_logging(settings.log_level)
    app = create_app(settings)
    print(f"Servidor escuchando en http://{settings.host}:{settings.port}")
    print(f"Window={settings.time_window}s Limit={settings.request_limit} req/window "
          f"Ban={settings.ban_duration}s")
    app.run(host=settings.host, port=settings.port, threaded=True)


if __name__ == "__main__":
    main()
