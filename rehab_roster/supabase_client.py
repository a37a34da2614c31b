"""
Supabase REST Client
Read-only access to the staff, special_programs and spt_allocations tables
through the hosted PostgREST endpoint.

Documentation: https://postgrest.org/en/stable/references/api/tables_views.html
"""

import logging
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)


class SupabaseClient:
    """
    Client for reading planning inputs from a Supabase project
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: int = 30
    ):
        """
        Initialize Supabase client

        Args:
            base_url: Project URL (https://<project>.supabase.co)
            api_key: anon or service-role key
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout

        self.session = requests.Session()
        self.session.headers.update({
            'apikey': api_key,
            'Authorization': f'Bearer {api_key}',
            'Accept': 'application/json'
        })

    def _select(
        self,
        table: str,
        select: str = '*',
        order: Optional[str] = None,
        filters: Optional[Dict[str, str]] = None
    ) -> List[Dict[str, Any]]:
        endpoint = f"{self.base_url}/rest/v1/{table}"

        params: Dict[str, str] = {'select': select}
        if order:
            params['order'] = order
        params.update(filters or {})

        logger.info(f"Fetching {table}")

        try:
            response = self.session.get(endpoint, params=params, timeout=self.timeout)
            response.raise_for_status()

            data = response.json()
            logger.info(f"Retrieved {len(data)} {table} rows")
            return data

        except requests.exceptions.RequestException as e:
            logger.error(f"Error fetching {table}: {e}")
            raise

    def get_staff(self) -> List[Dict[str, Any]]:
        """
        Retrieve staff rows ordered by rank, then name

        Returns:
            List of staff rows (active, inactive and buffer)
        """
        return self._select('staff', order='rank.asc,name.asc')

    def get_special_programs(self) -> List[Dict[str, Any]]:
        """
        Retrieve special program definitions

        Returns:
            List of special program rows
        """
        return self._select('special_programs')

    def get_spt_allocations(self) -> List[Dict[str, Any]]:
        """
        Retrieve specialist allocation rows

        Duplicate rows per staff id are returned as stored; StaffDirectory
        collapses them.

        Returns:
            List of spt_allocations rows
        """
        return self._select('spt_allocations')

    def fetch_planning_inputs(self) -> Dict[str, List[Dict[str, Any]]]:
        """
        Retrieve everything a planning run needs in one call

        Inactive staff are dropped; buffer staff are returned separately for
        the PCA reconciliation.

        Returns:
            {"staff", "buffer_staff", "special_programs", "spt_allocations"}
        """
        rows = self.get_staff()
        active = [s for s in rows if s.get('status') in (None, 'active')]
        buffer = [s for s in rows if s.get('status') == 'buffer']
        logger.info(
            f"Staff split: {len(active)} active, {len(buffer)} buffer, "
            f"{len(rows) - len(active) - len(buffer)} inactive"
        )
        return {
            'staff': active,
            'buffer_staff': buffer,
            'special_programs': self.get_special_programs(),
            'spt_allocations': self.get_spt_allocations(),
        }

    def test_connection(self) -> bool:
        """
        Test API connection

        Returns:
            True if the staff table is readable
        """
        try:
            self._select('staff', select='id', filters={'limit': '1'})
            logger.info("Supabase connection test successful")
            return True
        except requests.exceptions.RequestException as e:
            logger.error(f"Supabase connection test failed: {e}")
            return False
