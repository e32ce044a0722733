"""
Navigation layer: the route table and the guards that protect it.

Rendering is left to whatever shell consumes these objects.
"""
