"""
Small building blocks shared by the channel, connection and transport modules.
"""
