"""
Rodin Access Gateway.
"""
