#!/usr/bin/env python3

import asyncio
import sys

from theta_wallet_connect import ThetaWalletConnect, Config, NoConfigYet, pretty_print_obj

async def main(config_path):
    cfg = Config(config_path)
    wallet = ThetaWalletConnect(cfg)
    await wallet.connect()

    # the wallet announces its public config shortly after connecting
    for _ in range(50):
        if wallet.is_connected():
            break
        await asyncio.sleep(0.1)

    try:
        print(f"chain id: {wallet.get_chain_id()}, unlocked: {wallet.is_unlocked()}")
    except NoConfigYet:
        print("wallet has not announced its public config")

    accounts = await wallet.request_accounts()
    print(pretty_print_obj(accounts))

    await wallet.disconnect()


if __name__ == '__main__':
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else "wallet_connect.toml"))
