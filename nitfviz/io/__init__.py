"""
Container and metadata input for nitfviz.
"""
