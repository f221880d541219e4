"""Static renderings of the scene graph: SVG/HTML export and PNG snapshots."""
