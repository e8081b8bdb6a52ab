"""
App Catalog Backend — API Routes Package
=========================================

Route Inventory:
    - apps.py:    /api/app/*                 (catalog CRUD, search, store sync trigger)
    - public.py:  /api/public/get-city-data  (unauthenticated reads)
    - health.py:  GET /health                (database and scheduler status)

Routes stay thin: they resolve the caller's authority, call the repository or
the sync service, and shape the response.
"""
