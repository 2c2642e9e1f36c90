"""
API route modules of the warehouse service.

Subrouters:
- Auth, Users, Roles: authentication and administration
- Sites, Master Data: sites, items with units of measure, locations
- Inventory, Cycle Counts, Jobs, Transfers: stock movement and warehouse work
- Production, Procurement, Sales: order-driven workflows
- Quality, Cold Chain: NCR/CAPA and temperature monitoring
- Dashboard, Reports, Audit: KPIs, exports and the audit trail

Routers are included from src.api.main (under the /api/v1 prefix).
"""
