"""
Generation — the chat model that writes answers from retrieved context.
"""
