"""Core domain package for rulecfg.

Core holds the versioned configuration model and the rule parser. Grammars
and rule constructors are reached through ports, keeping the model portable.
"""
