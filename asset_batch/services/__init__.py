"""asset_batch.services -- Run executor and scheduler facade."""
