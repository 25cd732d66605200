"""
============================================================
TARJETA CRC — infrastructure/__init__.py
============================================================
Module: infrastructure (adapters)

Responsibilities:
  - Agrupar adapters concretos: pool de DB y repositorios.

Policy:
  - Este archivo NO contiene lógica ni side effects.
  - Importar desde los subpaquetes (db, repositories).
============================================================
"""
