"""
Symptom Service package for the AirCare Access Services.

Accepts per-user symptom entries and serves the caller's stored log:

- app.main: FastAPI app and the /symptoms routes.
- app.ingestion: Caller identity and the queueing producer.
- app.logs: Owner-scoped reads and deletes over the store.

Writes are asynchronous: a POST is accepted once queued, and the symptom
worker persists it later. Reads never see the queue.
"""
