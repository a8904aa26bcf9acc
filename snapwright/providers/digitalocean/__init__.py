"""DigitalOcean API access for snapwright builds.

Example:
    from snapwright.providers.digitalocean import DigitalOceanClient

    async with DigitalOceanClient(token) as client:
        regions = await client.list_regions()
"""

from snapwright.providers.digitalocean.client import DIGITALOCEAN_API_BASE, DigitalOceanClient

__all__ = ["DIGITALOCEAN_API_BASE", "DigitalOceanClient"]
