"""
Environment Service package for the AirCare Access Services.

Serves aggregated air-quality measurements for a city through a
read-through cache:

- app.main: FastAPI app and the /environment route.
- app.caching: Cache-aside controller plus miss coalescing.
- app.aggregation: Merges the upstream sources into one record.
- app.adapters: HTTP clients for the upstream providers.

The service is stateless; the cache lives in the shared key-value store.
"""
