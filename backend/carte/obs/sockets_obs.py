"""Helpers for instrumenting Socket.IO namespaces with metrics."""

from __future__ import annotations

from carte.obs import metrics


def connected(namespace: str) -> None:
	metrics.socket_connected(namespace)


def disconnected(namespace: str) -> None:
	metrics.socket_disconnected(namespace)


def event(namespace: str, name: str) -> None:
	metrics.socket_event(namespace, name)
