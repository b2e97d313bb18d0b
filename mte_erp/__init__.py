"""
MTE ERP service.

Keeps task lists, tasks and checklist items in a dense per-container
order and pushes live snapshots to viewers, and sends supplier inquiries
and customer offers over email and WhatsApp with rendered spreadsheet
and PDF attachments.
"""
