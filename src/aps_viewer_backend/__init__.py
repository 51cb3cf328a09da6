"""
APS Viewer Backend - REST API for the Autodesk Platform Services viewer

This package provides a FastAPI-based web service that fronts three remote
Autodesk Platform Services (APS) APIs on behalf of a browser viewer client:

- Viewer token issuing (read-only, viewables scope)
- Design file listing and upload to an Object Storage Service bucket
- Translation job submission and manifest polling via Model Derivative

The backend is a thin orchestration layer: bucket management, storage and
conversion all happen remotely. Nothing is persisted locally.

Key Components:
    - main: FastAPI application factory and server entry point
    - routes: HTTP endpoint definitions (auth and models groups)
    - aps_service: Cloud facade sequencing the remote calls
    - clients: Thin httpx clients for the authentication, OSS and
      Model Derivative APIs
    - configuration: Environment loading and validation
    - middleware: Per-request timeout handling

Usage:
    Run the API server with:
        aps-viewer-backend

    Or through uvicorn directly:
        uvicorn aps_viewer_backend.main:create_app --factory --port 8080
"""
