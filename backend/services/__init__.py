"""
Signing Backend Services
Agreement signing core, mail transport and SharePoint archive
"""
