"""Multi-tenant WhatsApp session gateway"""
