# Services module
#
# Import services from their own modules (app.services.order_service, ...);
# schemas import the pure helpers here, so this package stays import-free.
