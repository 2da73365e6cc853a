"""
Pipeline de sincronización one-way: CoinGecko (/coins/markets) -> base de datos.

Este paquete está diseñado para ejecutarse como job recurrente (scheduler
del proceso o CLI), no como parte del request/response del API.

Objetivos de diseño:
- Tolerancia a rate-limit: backoff exponencial con jitter y tope, respetando Retry-After.
- Resultados parciales: un fallo a mitad de camino conserva lo ya paginado.
- Idempotencia: UPSERT por identificador natural (id de CoinGecko); se puede
  ejecutar N veces sin duplicar datos.
- Cancelable: las esperas se interrumpen en el shutdown del proceso.
"""
