"""FastAPI dependencies resolving the handles wired onto app.state by the lifespan."""
from fastapi import Request

from sharebox.config import Settings
from sharebox.services.blob_store import BlobStore
from sharebox.services.lifecycle import ContainerLifecycle
from sharebox.services.retrieval import RetrievalService


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_lifecycle(request: Request) -> ContainerLifecycle:
    return request.app.state.lifecycle


def get_retrieval(request: Request) -> RetrievalService:
    return request.app.state.retrieval


def get_blob_store(request: Request) -> BlobStore:
    return request.app.state.blob_store
