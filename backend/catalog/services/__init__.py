"""
App Catalog Backend — Services Layer
=====================================

Service Inventory:
    - store_lookup:     StoreLookup (abstract), AppStoreLookup (iTunes API),
                        PlayStoreLookup (google-play-scraper), StoreLookupService
    - merge:            Pure merge of store metadata into AppRecord values
    - batch_scheduler:  Paced, single-use walk over a catalog snapshot
    - sync_service:     Bulk sync and on-demand refresh orchestration

Dependencies flow one way: sync_service → batch_scheduler / merge /
store_lookup. None of the lower modules import the orchestrator.
"""
