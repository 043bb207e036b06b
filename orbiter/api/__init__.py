"""
HTTP API for Orbiter traffic analytics.

Endpoints (all but /health require the X-Orbiter-Analytics-Token header):
    GET    /health                          - Liveness text
    GET    /health/details                  - Store readiness and event count
    POST   /analytics                       - Record one event
    GET    /analytics/latest                - Latest events
    GET    /analytics/{site}/stats          - Summary + daily views
    GET    /analytics/{site}/referrers      - Referrer breakdown
    GET    /analytics/{site}/paths          - Path breakdown
    GET    /analytics/{site}/paths/daily    - Daily views for one path
    GET    /analytics/{site}/countries      - Country breakdown
    GET    /analytics/{site}/export         - NDJSON export
    GET    /disk-space/stats                - Partitions
    GET    /disk-space/monitor              - Threshold alerts
    POST   /snapshot                        - Write a snapshot
    GET    /snapshot                        - List snapshots
    POST   /snapshot/restore                - Restore a snapshot
"""

from .server import create_app

__all__ = ["create_app"]
