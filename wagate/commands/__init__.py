"""Text commands dispatched by the event router"""
