"""
The ``care`` app: patient treatments, doctor scheduling, payments,
meeting records and blog content for the clinic backend.
"""
