"""
wrappedpg.core
==============

Ambient pieces shared by the wrappers and runners: settings read from the
environment, error classification and logger setup.
"""
