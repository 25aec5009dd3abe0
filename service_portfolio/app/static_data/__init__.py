"""
Static snapshot generation (build time) and loading (run time).
"""
