"""
Business services behind the HTTP API and the CLI.
"""
