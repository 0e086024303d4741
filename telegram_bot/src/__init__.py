"""
Telegram Payment Bot

Chat transport, settings and process wiring
"""
