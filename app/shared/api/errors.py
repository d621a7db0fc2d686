E_INTERNAL = 'E_INTERNAL_ERROR'
E_INVALID_PARAMS = 'E_INVALID_PARAMS'
E_BAD_TOKEN = 'E_BAD_TOKEN'
