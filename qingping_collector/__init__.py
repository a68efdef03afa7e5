"""Qingping CGDN1 → Prometheus collector."""
