"""Configuración compartida del collector."""
