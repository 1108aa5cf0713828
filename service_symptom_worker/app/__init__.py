"""
Symptom Worker package for the AirCare Access Services.

Drains the symptom queue and persists each entry into the key-value
store under its (ownerId, id) identity:

- app.main: FastAPI app exposing health/metrics; runs the consume loop.
- app.consumer: Batch processing, poison-message handling and settling.

Delivery is at-least-once. Persistence is an idempotent overwrite, so
redelivered or duplicated messages are harmless.
"""
