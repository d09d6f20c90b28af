"""
client_test_safe.py
Cliente de prueba SEGURO para el servidor de recepcion (intake_server.py).
Envia peticiones POST concurrentes y resume cuantas fueron aceptadas (200),
baneadas (403) o limitadas (429).

Uso ejemplo:
python client_test_safe.py http://127.0.0.1:8080 --concurrency 4 --duration 10 --body '{"ping":1}' --forwarded-for 9.9.9.9 --out results.csv --confirm-own
"""
import argparse
import csv
import sys
import threading
import time
from datetime import datetime, timezone

import requests

# Parámetros máximos razonables por seguridad (ajusta con precaución)
MAX_CONCURRENCY_SAFE = 200


def build_parser():
    parser = argparse.ArgumentParser(description="Cliente de prueba controlada (SEGURO)")
    parser.add_argument("baseurl", help="URL objetivo (debe ser tuya). Ej: http://127.0.0.1:8080")
    parser.add_argument("--concurrency", type=int, default=4, help="Hilos concurrentes (default 4)")
    parser.add_argument("--duration", type=int, default=10, help="Duración total en segundos (default 10)")
    parser.add_argument("--path", default="/", help="Ruta a solicitar (default /)")
    parser.add_argument("--body", default="ping", help="Cuerpo de cada POST (default 'ping')")
    parser.add_argument("--forwarded-for", default=None, help="Valor de X-Forwarded-For para simular un cliente")
    parser.add_argument("--timeout", type=float, default=5.0, help="Timeout por request (s)")
    parser.add_argument("--delay", type=float, default=0.0, help="Delay (s) entre requests por hilo (default 0.0)")
    parser.add_argument("--out", default=None, help="Archivo CSV de salida para registros (opcional)")
    parser.add_argument("--confirm-own", action="store_true", help="Confirmas que eres propietario/administrador del objetivo (OBLIGATORIO para ejecutar)")
    return parser


def new_stats():
    return {"sent": 0, "errors": 0, "codes": {}, "records": []}


def record_result(stats, lock, thread_id, status, detail, keep_records):
    ts = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    with lock:
        stats["sent"] += 1
        if status == "ERR":
            stats["errors"] += 1
        else:
            stats["codes"][status] = stats["codes"].get(status, 0) + 1
        if keep_records:
            stats["records"].append((ts, thread_id, status, detail))


def worker(session, url, args, stop_time, stats, lock, thread_id):
    headers = {}
    if args.forwarded_for:
        headers["X-Forwarded-For"] = args.forwarded_for
    while time.time() < stop_time:
        try:
            r = session.post(url, data=args.body.encode("utf-8"), headers=headers, timeout=args.timeout)
            record_result(stats, lock, thread_id, r.status_code, len(r.content), bool(args.out))
        except requests.RequestException as e:
            record_result(stats, lock, thread_id, "ERR", str(e), bool(args.out))
        if args.delay > 0:
            time.sleep(args.delay)


def summarize(stats):
    codes = stats["codes"]
    lines = [
        "=== INFORME FINAL ===",
        f"Peticiones enviadas: {stats['sent']}",
        f"Aceptadas (200): {codes.get(200, 0)}",
        f"Baneadas (403): {codes.get(403, 0)}",
        f"Limitadas (429): {codes.get(429, 0)}",
        f"Errores/Timeouts: {stats['errors']}",
        "Códigos HTTP recibidos:",
    ]
    for code, n in sorted(codes.items()):
        lines.append(f"  {code}: {n}")
    return lines


def write_csv(path, records):
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(["timestamp_utc", "thread_id", "status_or_error", "bytes_or_error"])
        for rec in records:
            writer.writerow(rec)


def main(argv=None):
    args = build_parser().parse_args(argv)

    # Seguridad básica: requerir confirmación explícita
    if not args.confirm_own:
        print("ERROR: Debes pasar la opción --confirm-own para confirmar que el objetivo es tuyo.")
        return 1

    concurrency = max(1, args.concurrency)
    if concurrency > MAX_CONCURRENCY_SAFE:
        print(f"Advertencia: concurrency solicitado ({concurrency}) excede el máximo seguro ({MAX_CONCURRENCY_SAFE}).")
        return 1

    url = args.baseurl.rstrip("/") + args.path
    print("=" * 60)
    print("CLIENTE DE PRUEBA SEGURO")
    print(f"Objetivo: {url}")
    print(f"Duración (s): {args.duration}  Hilos: {concurrency}")
    if args.forwarded_for:
        print(f"X-Forwarded-For: {args.forwarded_for}")
    print("=" * 60)

    stats = new_stats()
    lock = threading.Lock()
    stop_time = time.time() + args.duration
    threads = []
    with requests.Session() as session:
        for i in range(concurrency):
            t = threading.Thread(target=worker, args=(session, url, args, stop_time, stats, lock, i), daemon=True)
            threads.append(t)
            t.start()
        for t in threads:
            t.join()

    for line in summarize(stats):
        print(line)

    if args.out:
        try:
            write_csv(args.out, stats["records"])
            print(f"Registros guardados en {args.out}")
        except OSError as e:
            print("No se pudo escribir CSV:", e)

    print("FIN.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
