"""
Starred email to Markdown note sync service.
"""
