"""Test suite for the session gateway"""
