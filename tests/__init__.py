"""Test package for the rhythm captcha.

Core tests drive the challenge with a fake clock; UI tests run headlessly
using pygame's dummy video and audio drivers.  To run these tests, execute
``pytest`` from the project root.
"""
