"""
Urban Heat Island Mapper — CLI Entry Point
===========================================
Installed as the ``geo-uhi-map`` command via ``pyproject.toml``.

Usage:
    geo-uhi-map -i data/gaul_level1.gpkg -o output/chennai_uhi.tif \\
        --landcover-collection io-lulc-annual-v02 --urban-class 7 --months 1 12
    geo-uhi-map -i boundaries.geojson -o uhi.tif --config uhi.json \\
        --landcover-collection my-landcover --png --verbose
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional, Tuple

import click

from uhi_mapper.config import UHIConfig
from uhi_mapper.exceptions import UHIMapperError
from uhi_mapper.fetcher import PLANETARY_COMPUTER_URL, StacImagerySource
from uhi_mapper.tool import UrbanHeatIslandMapper


@click.command(
    name="geo-uhi-map",
    help="Classify urban heat-island intensity for the boundary containing a "
         "point and write it as a GeoTIFF.",
)
@click.option(
    "--input", "-i", "input_path",
    required=True,
    type=click.Path(exists=True, path_type=Path),
    help="Administrative-boundary dataset (.shp, .gpkg, .geojson, .gdb).",
)
@click.option(
    "--output", "-o", "output_path",
    required=True,
    type=click.Path(file_okay=True, dir_okay=False, path_type=Path),
    help="Path for the classified GeoTIFF.",
)
@click.option(
    "--config", "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="JSON configuration file; the options below override it.",
)
@click.option("--layer", default=None, help="Layer name inside a GeoPackage or FileGDB.")
@click.option("--lon", type=float, default=None, help="City point longitude (WGS84).")
@click.option("--lat", type=float, default=None, help="City point latitude (WGS84).")
@click.option("--start", "start_date", default=None, help="First day of the window (YYYY-MM-DD).")
@click.option("--end", "end_date", default=None, help="End of the window, exclusive (YYYY-MM-DD).")
@click.option(
    "--months",
    type=(int, int),
    default=None,
    help="First and last calendar month of the land-cover window.",
)
@click.option("--max-cloud", type=float, default=None, help="Maximum scene cloud cover (%).")
@click.option("--urban-class", type=int, default=None, help="Land-cover label of built-up pixels.")
@click.option(
    "--landcover-collection",
    required=True,
    help="STAC collection with per-pixel land-cover labels.",
)
@click.option("--landcover-asset", default="data", show_default=True, help="Land-cover asset key.")
@click.option(
    "--thermal-collection",
    default="landsat-c2-l2",
    show_default=True,
    help="STAC collection of thermal scenes.",
)
@click.option("--thermal-asset", default="lwir11", show_default=True, help="Thermal asset key.")
@click.option("--stac-url", default=PLANETARY_COMPUTER_URL, show_default=True, help="STAC API root.")
@click.option(
    "--no-sign",
    is_flag=True,
    default=False,
    help="Do not sign asset URLs with Planetary Computer tokens.",
)
@click.option(
    "--resolution",
    type=float,
    default=30.0,
    show_default=True,
    help="Analysis grid pixel size in metres.",
)
@click.option("--png", is_flag=True, default=False, help="Also write a PNG quick-look.")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
def main(
    input_path: Path,
    output_path: Path,
    config_path: Optional[Path],
    layer: Optional[str],
    lon: Optional[float],
    lat: Optional[float],
    start_date: Optional[str],
    end_date: Optional[str],
    months: Optional[Tuple[int, int]],
    max_cloud: Optional[float],
    urban_class: Optional[int],
    landcover_collection: str,
    landcover_asset: str,
    thermal_collection: str,
    thermal_asset: str,
    stac_url: str,
    no_sign: bool,
    resolution: float,
    png: bool,
    verbose: bool,
) -> None:
    """CLI entry point — wires Click options into UrbanHeatIslandMapper."""
    try:
        config = UHIConfig.from_json(config_path) if config_path else UHIConfig()
        config = config.with_overrides(
            center_lon=lon,
            center_lat=lat,
            start_date=start_date,
            end_date=end_date,
            months=tuple(months) if months else None,
            max_cloud_cover=max_cloud,
            urban_class=urban_class,
        )

        source = StacImagerySource(
            landcover_collection=landcover_collection,
            landcover_asset=landcover_asset,
            thermal_collection=thermal_collection,
            thermal_asset=thermal_asset,
            stac_url=stac_url,
            sign=not no_sign,
            resolution=resolution,
        )
        tool = UrbanHeatIslandMapper(
            input_path,
            output_path,
            config,
            source,
            png=png,
            layer=layer,
            verbose=verbose,
        )
        tool.run()
    except UHIMapperError as exc:
        click.echo(f"Error: {exc.message}", err=True)
        sys.exit(1)

    if tool.result is not None:
        tool.result.summary()
    click.echo(f"\nClassified raster written to: {output_path}")


if __name__ == "__main__":
    main()
