"""
M-Hike API: Services Layer
============================

Business rules between the routes (HTTP) and the database.

Service Inventory:
    - storage.AssetStorage:              receive, name and delete upload files
    - asset_lifecycle.AssetTransaction:  tie an upload to the DB write using it
    - user_service / hike_service / observation_service: resource operations
    - orphan_sweeper.OrphanSweeper:      remove files no row references

Services are stateless singletons; sessions, storage and settings are
passed in per call, which keeps them testable without HTTP.
"""
