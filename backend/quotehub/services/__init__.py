# backend/quotehub/services/__init__.py
"""
Service layer.

Services:
- Have NO knowledge of HTTP (no HTTPException, no status codes)
- Raise domain-specific exceptions (exceptions.py)
- Receive database sessions as parameters (not via Depends)

Nothing is re-exported here. utils import constants from this package,
so it must stay free of imports.

Architecture:
    services/
    ├── exceptions.py                # Domain exceptions
    ├── constants.py                 # Currencies, property keys, limits
    ├── circuit_breaker.py           # Circuit breaker for upstream APIs
    ├── redis_cache.py               # Quote cache
    ├── property_service.py          # Runtime key/value properties
    ├── market_data_service.py       # Stored daily prices
    ├── api_key_service.py           # Gateway API keys
    ├── data_provider/               # Providers + DataProviderService
    └── gateway/                     # GatewayService (data provider gateway)
"""
