"""
HTTP front end for the chat assistant.
"""
