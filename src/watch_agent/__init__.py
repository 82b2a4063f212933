"""
FarmWatch watch agent.

A headless client of the FarmWatch server: keeps live copies of the fire
zone, security point and team member collections and records alerts for
operators in a local notification log.
"""
