"""Batching and webhook delivery"""
from .batch_buffer import BatchBuffer
from .webhook_dispatcher import WebhookDispatcher

__all__ = ["BatchBuffer", "WebhookDispatcher"]
