"""asset_portal: núcleo de cache y agregación de actividad del portal de assets."""

__version__ = "0.1.0"
