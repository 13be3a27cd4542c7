
__classification__ = "UNCLASSIFIED"
