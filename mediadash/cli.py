import argparse
import asyncio
import getpass
import json
from dataclasses import asdict
from typing import Optional

from .api import download_file
from .models import ListingQuery, ShareTab, SortKey, TypeFilter, UploadFile
from .session import GuardOutcome
from .share import open_shared_file
from .state import DASHBOARD_PATH, AppState
from .utils import format_bytes


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog='mediadash')
    sub = p.add_subparsers(dest='cmd', required=True)

    auth = sub.add_parser('auth')
    auth_sub = auth.add_subparsers(dest='auth_cmd', required=True)
    login = auth_sub.add_parser('login')
    login.add_argument('--email', required=True)
    login.add_argument('--password')
    reg = auth_sub.add_parser('register')
    reg.add_argument('--name', required=True)
    reg.add_argument('--email', required=True)
    reg.add_argument('--password')
    auth_sub.add_parser('logout')
    auth_sub.add_parser('whoami')

    ls = sub.add_parser('ls')
    ls.add_argument('--search', default='')
    ls.add_argument('--sort', choices=[k.value for k in SortKey], default=SortKey.CREATED_AT.value)
    ls.add_argument('--filter', choices=[f.value for f in TypeFilter if f.value], default='')
    ls.add_argument('--json', action='store_true')

    upload = sub.add_parser('upload')
    upload.add_argument('paths', nargs='+')
    upload.add_argument('--tag', action='append', default=[])

    rm = sub.add_parser('rm')
    rm.add_argument('file_id')

    view = sub.add_parser('view')
    view.add_argument('file_id')

    share = sub.add_parser('share')
    share.add_argument('file_id')
    share.add_argument('--email', required=True)

    link = sub.add_parser('link')
    link.add_argument('file_id')

    shared = sub.add_parser('shared')
    shared.add_argument('share_token')
    shared.add_argument('--out')

    pull = sub.add_parser('pull')
    pull.add_argument('file_id')
    pull.add_argument('--out')

    return p


def _print_records(records, as_json: bool) -> None:
    if as_json:
        rows = []
        for record in records:
            row = asdict(record)
            row['tags'] = sorted(record.tags)
            rows.append(row)
        print(json.dumps(rows, indent=2))
        return
    for record in records:
        tags = ','.join(sorted(record.tags))
        print(f"{record.id}\t{format_bytes(record.size_bytes)}\t{record.view_count}\t{record.name}\t{tags}")


async def _run_auth(state: AppState, args: argparse.Namespace) -> int:
    session = state.session
    if args.auth_cmd == 'logout':
        session.logout()
        print('OK: signed out')
        return 0
    if args.auth_cmd == 'whoami':
        decision = await session.ensure_authenticated()
        if decision.outcome is not GuardOutcome.RENDER:
            print('Not signed in.')
            return 1
        user = session.session.user
        print(f"{user.name} <{user.email}> (id={user.id})")
        return 0

    password = args.password or getpass.getpass('Password: ')
    if args.auth_cmd == 'login':
        result = await session.login(args.email, password)
    else:
        result = await session.register(args.name, args.email, password)
    if not result.is_authenticated:
        print(f"Error: {result.error}")
        return 1
    print(f"OK: signed in as {result.user.email}")
    return 0


async def _run(state: AppState, args: argparse.Namespace) -> int:
    state.session.bootstrap()
    if args.cmd == 'auth':
        return await _run_auth(state, args)

    if args.cmd == 'shared':
        result = await open_shared_file(state.client, args.share_token)
        if result.redirect_to:
            print(f"Sign in required: {result.redirect_to}")
            return 1
        if result.error:
            print(f"Error: {result.error}")
            return 1
        _print_records([result.record], as_json=False)
        if args.out:
            print(await download_file(state.client, result.record, args.out))
        return 0

    decision = await state.session.ensure_authenticated(DASHBOARD_PATH)
    if decision.outcome is not GuardOutcome.RENDER:
        print(f"Not signed in. Run: mediadash auth login (then return to {decision.redirect_to})")
        return 2

    listing = state.listing
    if args.cmd == 'ls':
        await listing.apply_query(ListingQuery(args.search, SortKey(args.sort), TypeFilter(args.filter)))
        if listing.error:
            print(f"Error: {listing.error}")
            return 1
        _print_records(listing.records, args.json)
        return 0

    if args.cmd == 'upload':
        files = [UploadFile.from_path(path) for path in args.paths]
        records = await state.uploads.upload(files, args.tag)
        if records is None:
            print(f"Error: {state.uploads.error}")
            return 1
        _print_records(records, as_json=False)
        return 0

    if args.cmd == 'rm':
        if not await listing.delete_record(args.file_id):
            print(f"Error: {listing.error}")
            return 1
        print('OK')
        return 0

    if args.cmd in ('view', 'pull'):
        await listing.refresh()
        if listing.find(args.file_id) is None:
            print(f"Error: {listing.error or 'file not found'}")
            return 1
        if args.cmd == 'view':
            url = await state.view_record(args.file_id)
            if url is None:
                print(f"Error: {listing.error}")
                return 1
            print(url)
            return 0
        record = listing.find(args.file_id)
        print(await download_file(state.client, record, args.out or record.name))
        return 0

    if args.cmd == 'share':
        dialog = state.open_share(args.file_id)
        ok = await dialog.send_invite(args.email)
        state.close_share(args.file_id)
        print(dialog.success if ok else f"Error: {dialog.error}")
        return 0 if ok else 1

    if args.cmd == 'link':
        dialog = state.open_share(args.file_id)
        task = dialog.activate_tab(ShareTab.LINK)
        if task is not None:
            await task
        url = dialog.state.link_url
        state.close_share(args.file_id)
        if not url:
            print(f"Error: {dialog.error}")
            return 1
        print(url)
        return 0

    return 1


async def _amain(args: argparse.Namespace, state: Optional[AppState] = None) -> int:
    state = state or AppState.create()
    try:
        return await _run(state, args)
    finally:
        await state.aclose()


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return asyncio.run(_amain(args))


if __name__ == '__main__':
    raise SystemExit(main())
