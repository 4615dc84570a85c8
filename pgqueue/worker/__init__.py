"""
Worker module.
Contains a polling loop that drives Queue.pop.
"""
