"""
admission.py
Control de admision en memoria: ventana deslizante por cliente + lista de baneos.

Cada peticion se evalua asi:
    lista de baneos -> ventana deslizante -> (si excede) baneo y ventana limpia

Todo el estado vive en un AdmissionController, protegido por un unico lock.
"""

import enum
import logging
import threading
import time

logger = logging.getLogger(__name__)

BAN_DURATION = 60.0   # segundos
REQUEST_LIMIT = 4     # peticiones por ventana
TIME_WINDOW = 1.0     # segundos


class Decision(enum.Enum):
    ALLOWED = 200
    FORBIDDEN = 403
    TOO_MANY_REQUESTS = 429

    @property
    def status_code(self):
        return self.value

    @property
    def allowed(self):
        return self is Decision.ALLOWED


class BanRegistry:
    """Expiracion de baneo por cliente.

    No tiene lock propio: solo se usa dentro de la seccion critica del
    AdmissionController.
    """

    def __init__(self):
        self._banned_until = {}

    def is_banned(self, client_id, now):
        """Lectura con desalojo: True si el baneo expira despues de `now`.

        OJO: no es de solo lectura. Si la entrada ya expiro, se elimina.
        """
        until = self._banned_until.get(client_id)
        if until is None:
            return False
        if until > now:
            return True
        del self._banned_until[client_id]
        return False

    def ban(self, client_id, now, duration):
        # sobrescribe, no acumula
        self._banned_until[client_id] = now + duration

    def expires_at(self, client_id):
        return self._banned_until.get(client_id)

    def active_count(self):
        return len(self._banned_until)


class RateWindow:
    """Historial de timestamps por cliente dentro de la ventana."""

    def __init__(self):
        self._hits = {}

    def record_and_check(self, client_id, now, window, limit):
        """Registra `now` y devuelve True si se supera `limit`.

        Se conservan los timestamps con `now - t <= window`; exactamente
        `limit` peticiones pasan, la siguiente devuelve True.
        """
        lst = [t for t in self._hits.get(client_id, ()) if now - t <= window]
        lst.append(now)
        self._hits[client_id] = lst
        return len(lst) > limit

    def forget(self, client_id):
        self._hits.pop(client_id, None)

    def count(self, client_id):
        return len(self._hits.get(client_id, ()))

    def tracked_count(self):
        return len(self._hits)


class AdmissionController:
    """Decide Allowed / Forbidden / TooManyRequests para cada peticion.

    Una sola instancia por proceso; se pasa a los handlers. Los parametros
    son fijos durante la vida del proceso.
    """

    def __init__(self, ban_duration=BAN_DURATION, request_limit=REQUEST_LIMIT,
                 time_window=TIME_WINDOW, clock=time.monotonic):
        self.ban_duration = ban_duration
        self.request_limit = request_limit
        self.time_window = time_window
        self._clock = clock
        self._bans = BanRegistry()
        self._window = RateWindow()
        self._lock = threading.Lock()

    def check(self, client_id, now=None) -> Decision:
        if now is None:
            now = self._clock()
        with self._lock:
            if self._bans.is_banned(client_id, now):
                logger.debug("Cliente baneado: %r", client_id)
                return Decision.FORBIDDEN
            exceeded = self._window.record_and_check(
                client_id, now, self.time_window, self.request_limit)
            if exceeded:
                self._bans.ban(client_id, now, self.ban_duration)
                self._window.forget(client_id)
        if exceeded:
            logger.info("Limite superado por %r, baneado %ss",
                        client_id, self.ban_duration)
            return Decision.TOO_MANY_REQUESTS
        return Decision.ALLOWED

    def is_banned(self, client_id, now=None) -> bool:
        # tambien desaloja baneos expirados
        if now is None:
            now = self._clock()
        with self._lock:
            return self._bans.is_banned(client_id, now)

    def requests_in_window(self, client_id):
        with self._lock:
            return self._window.count(client_id)

    def ban_expiry(self, client_id):
        with self._lock:
            return self._bans.expires_at(client_id)

    def snapshot(self):
        with self._lock:
            return {
                "clients_tracked": self._window.tracked_count(),
                "active_bans": self._bans.active_count(),
            }
