# BSD 3-Clause License
#
# Copyright (c) 2022-2025, rd2
#
# Redistribution and use in source and binary forms, with or without
# modification, are permitted provided that the following conditions are met:
#
# 1. Redistributions of source code must retain the above copyright notice, this
#    list of conditions and the following disclaimer.
#
# 2. Redistributions in binary form must reproduce the above copyright notice,
#    this list of conditions and the following disclaimer in the documentation
#    and/or other materials provided with the distribution.
#
# 3. Neither the name of the copyright holder nor the names of its
#    contributors may be used to endorse or promote products derived from
#    this software without specific prior written permission.
#
# THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS "AS IS"
# AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT LIMITED TO, THE
# IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS FOR A PARTICULAR PURPOSE ARE
# DISCLAIMED. IN NO EVENT SHALL THE COPYRIGHT HOLDER OR CONTRIBUTORS BE LIABLE
# FOR ANY DIRECT, INDIRECT, INCIDENTAL, SPECIAL, EXEMPLARY, OR CONSEQUENTIAL
# DAMAGES (INCLUDING, BUT NOT LIMITED TO, PROCUREMENT OF SUBSTITUTE GOODS OR
# SERVICES; LOSS OF USE, DATA, OR PROFITS; OR BUSINESS INTERRUPTION) HOWEVER
# CAUSED AND ON ANY THEORY OF LIABILITY, WHETHER IN CONTRACT, STRICT LIABILITY,
# OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE) ARISING IN ANY WAY OUT OF THE USE
# OF THIS SOFTWARE, EVEN IF ADVISED OF THE POSSIBILITY OF SUCH DAMAGE.

from oslg import oslg
from .topolys import CN, Model, GeometryError
from . import geo
from . import psi
from . import rules
from . import ua


def _defaults(argh=dict()) -> bool:
    """Sets default TBD arguments (in place), validating switches.

    Returns:
        bool: Whether arguments are valid.
        False: If invalid inputs (see logs).

    """
    mth = "tbd.defaults"

    if not isinstance(argh, dict):
        return oslg.mismatch("argh", argh, dict, mth, CN.DBG, False)

    argh.setdefault("option"       , "")
    argh.setdefault("io"           , dict())
    argh.setdefault("parapet"      , True)
    argh.setdefault("sub_tol"      , CN.TOL)
    argh.setdefault("uprate_walls" , False)
    argh.setdefault("uprate_roofs" , False)
    argh.setdefault("uprate_floors", False)
    argh.setdefault("wall_ut"      , 0)
    argh.setdefault("roof_ut"      , 0)
    argh.setdefault("floor_ut"     , 0)
    argh.setdefault("wall_option"  , "")
    argh.setdefault("roof_option"  , "")
    argh.setdefault("floor_option" , "")

    for k in ("parapet", "uprate_walls", "uprate_roofs", "uprate_floors"):
        if not isinstance(argh[k], bool):
            return oslg.mismatch(k, argh[k], bool, mth, CN.ERR, False)

    for k in ("sub_tol", "wall_ut", "roof_ut", "floor_ut"):
        try:
            argh[k] = float(argh[k])
        except (ValueError, TypeError):
            return oslg.mismatch(k, argh[k], float, mth, CN.ERR, False)

    return True


def _layers(s=dict()):
    """Identifies the insulating layer of each surface. Deratable surfaces
    without a valid insulating layer can't be derated."""
    mth = "tbd.layers"

    for id, surface in s.items():
        if "layers" not in surface:
            if surface["deratable"]:
                oslg.log(CN.ERR, "Can't derate '%s': no layers (%s)" % (id, mth))
                surface["deratable"] = False

            continue

        lyr = ua.insulatingLayer(surface["layers"])

        if "index" in surface:
            i = surface["index"]

            if isinstance(i, int) and 0 <= i < len(surface["layers"]):
                l = surface["layers"][i]
                lyr["index"] = i
                lyr["type" ] = "massless" if "r" in l else "standard"
                lyr["r"    ] = ua.rsi([l])
            else:
                oslg.invalid("%s layer index" % id, mth, 0, CN.ERR)
                lyr["index"] = None

        if lyr["index"] is None:
            if surface["deratable"]:
                oslg.log(CN.ERR, "Can't derate '%s': insulation? (%s)" % (id, mth))
                surface["deratable"] = False

            continue

        surface["index"] = lyr["index"]
        surface["ltype"] = lyr["type"]
        surface["r"    ] = lyr["r"]
        surface.setdefault("film", 0.0)


def allocate(e=dict(), s=dict(), holes=dict()) -> list:
    """Assigns thermal bridging heat loss of classified edges to linked
    deratable surfaces, in proportion to their insulating layer RSi. The most
    conductive PSI type wins (first one on ties). Edges linking more than one
    subsurface are skipped. If an edge links a subsurface, its parent and
    another deratable surface (e.g. corner windows), the parent isn't derated.

    Args:
        e (dict):
            TBD edges, with "psi" candidates (see 'rules.classify').
        s (dict):
            TBD surfaces (see 'geo.surfaces').
        holes (dict):
            TBD subsurfaces.

    Returns:
        list: Edge records, for reporting.

    """
    mth = "tbd.allocate"
    res = []

    for eid, edge in e.items():
        if "psi" not in edge: continue

        typ, val = rules.pick(edge["psi"])
        mult     = edge.get("mult", 1)
        length   = edge["length"] * mult
        sets     = edge.get("sets", dict())
        ids      = [id for id in edge["surfaces"] if id in s and s[id]["deratable"]]
        subs     = [id for id in edge["surfaces"] if id in holes]

        res.append(dict(id       = eid,
                        type     = typ,
                        psi      = val,
                        length   = edge["length"],
                        mult     = mult,
                        surfaces = list(edge["surfaces"].keys()),
                        v0       = (edge["v0"].x(), edge["v0"].y(), edge["v0"].z()),
                        v1       = (edge["v1"].x(), edge["v1"].y(), edge["v1"].z()),
                        set      = sets.get(typ, edge.get("set", "")),
                        sets     = dict(sets)))

        if len(subs) > 1:
            m = "Edge %d links %d subsurfaces: skipped (%s)" % (eid, len(subs), mth)
            oslg.log(CN.INF, m)
            continue

        if len(ids) > 1 and subs:
            ids = [id for id in ids if subs[0] not in s[id]["subs"]]

        if not ids: continue

        rsi = sum([s[id].get("r", 0) for id in ids])

        for id in ids:
            ratio = s[id].get("r", 0) / rsi if rsi > CN.RMIN else 0
            b     = dict(psi=val * ratio, type=typ, length=length, ratio=ratio)

            if "edges" not in s[id]: s[id]["edges"] = dict()

            s[id]["edges"][eid] = b

    for id, surface in s.items():
        if "edges" not in surface: continue

        surface["heatloss"] = sum([b["psi"] * b["length"] for b in surface["edges"].values()])

    return res


def points(s=dict(), io=dict(), khi=None):
    """Adds point thermal bridge heat loss (KHI x count) to deratable surfaces."""
    for surface in io.get("surfaces", []):
        if "id" not in surface or "khis" not in surface: continue

        id = surface["id"]
        if id not in s or not s[id]["deratable"]: continue

        for k in surface["khis"]:
            if "id" not in k or "count" not in k: continue
            if k["id"] not in khi.point: continue

            # Invalid counts are logged in 'psi.inputs'.
            if isinstance(k["count"], bool) or not isinstance(k["count"], int): continue
            if k["count"] < 0: continue

            val = khi.point[k["id"]]
            if val <= CN.RMIN: continue

            s[id]["heatloss"] = s[id].get("heatloss", 0) + val * k["count"]

            if "pts" not in s[id]: s[id]["pts"] = dict()

            s[id]["pts"][k["id"]] = dict(val=val, n=k["count"])


def process(s=[], shades=[], argh=dict()) -> dict:
    """Detects and quantifies major thermal bridges in a building envelope,
    and derates the insulating layer of affected surfaces. Steps:
        - ingestion: kernel vertices, edges, wires & faces of (sub)surfaces
        - polar position of surfaces around each shared edge
        - customization inputs (PSI & KHI sets, overrides)
        - edge classification, overrides, multipliers & proximity resets
        - heat loss allocation (PSI x length + KHI x count)
        - uprating (optional), then derating

    Args:
        s (list):
            Surface records (see 'geo.surfaces'), with their "layers" and
            air "film" resistance.
        shades (list):
            Shading surface records (see 'geo.shades').
        argh (dict):
            TBD arguments:
                - "option" (str): building PSI set, e.g. "poor (BETBG)"
                - "io" (dict): customization inputs (see 'psi.inputs')
                - "parapet" (bool): wall-roof edges as parapets (or roofs)
                - "sub_tol" (float): subsurface edge proximity tolerance (m)
                - "uprate_walls", "uprate_roofs", "uprate_floors" (bool)
                - "wall_ut", "roof_ut", "floor_ut" (float): targets in W/m2.K
                - "wall_option", "roof_option", "floor_option" (str)

    Returns:
        A dictionary:
            - "surfaces" (dict): derated surface results, keyed by ID
            - "edges" (list): edge records (type, PSI, length, surfaces, etc.)
        If FATAL (see logs), both are empty.

    """
    mth = "tbd.process"
    res = dict(surfaces=dict(), edges=[])

    if not _defaults(argh): return res

    # Degenerate polygons are FATAL: no partial derating.
    try:
        tbd = geo.surfaces(s)
        shd = geo.shades(shades)
    except GeometryError as e:
        oslg.log(CN.FTL, "%s (%s)" % (str(e), mth))
        return res

    if not tbd:
        oslg.empty("surfaces", mth, CN.ERR)
        return res

    holes = dict()

    for props in tbd.values():
        for id, sub in props["subs"].items(): holes[id] = sub

    # Ingestion: floors, ceilings, walls & then shades.
    model = Model()
    grps  = [[(id, p) for id, p in tbd.items() if p["type"] == t] for t in geo.types()]
    order = dict()

    for grp in grps:
        grp.sort(key=lambda x: (x[1]["minz"], x[1]["space"]))
        order.update(grp)

    try:
        wires = geo.dads(model, order)
        geo.dads(model, shd)
    except GeometryError as e:
        oslg.log(CN.FTL, "%s (%s)" % (str(e), mth))
        return res

    # Subsurface (hole) wires are linked first.
    edges = dict()

    for id, wire in wires.items(): geo.link(model, edges, wire, id)

    geo.faces(model, order, edges)
    geo.faces(model, shd, edges)

    normals = dict()
    outers  = dict()

    for id, p in shd.items(): normals[id] = p["n"]
    for id, p in holes.items(): normals[id] = p["n"]

    for id, p in tbd.items():
        normals[id] = p["n"]
        if "wire" in p: outers[id] = p["wire"]

    geo.polar(model, edges, normals, outers)
    _layers(tbd)

    # Customization: FATAL if no valid building PSI set.
    ipt = psi.inputs(tbd, edges, argh)
    if ipt["io"] is None: return res

    lib = ipt["psi"]
    bdg = ipt["io"]["building"]["psi"]
    val = lib.val[bdg]

    for id, edge in edges.items():
        ids = [i for i in edge["surfaces"] if i in tbd and tbd[i]["deratable"]]

        if "io_type" in edge:
            if not ids: continue

            edge["psi"] = dict([(edge["io_type"], val[lib.safe(bdg, edge["io_type"])])])
            continue

        candidates = rules.classify(edge, tbd, holes, shd, val, argh["parapet"])
        if candidates: edge["psi"] = candidates

    for id, edge in edges.items():
        if "psi" not in edge: continue

        r = psi.resolve(edge, tbd, ipt)
        edge["psi" ] = r["psi"]
        edge["sets"] = r["sets"]
        edge["set" ] = r["set"]
        edge["mult"] = rules.multiplier(edge, holes)

    for id in rules.proximity(edges, holes, argh["sub_tol"]):
        edges[id]["psi" ] = dict(transition=val["transition"])
        edges[id]["sets"] = dict(transition=bdg)
        edges[id]["mult"] = 1

    res["edges"] = allocate(edges, tbd, holes)
    points(tbd, ipt["io"], ipt["khi"])

    if argh["uprate_walls"] or argh["uprate_roofs"] or argh["uprate_floors"]:
        ua.uprate(tbd, argh)

    for id, surface in tbd.items():
        if not surface["deratable"]: continue
        if abs(surface.get("heatloss", 0)) <= CN.TOL: continue

        layers = surface["layers"]
        index  = surface["index"]
        film   = surface["film"]
        m      = ua.derate(id, surface, layers[index])
        if m is None: continue

        derated        = list(layers)
        derated[index] = m
        r0             = ua.rsi(layers, film)
        r1             = ua.rsi(derated, film)
        de             = 1 / (1 / surface["r"] + surface["heatloss"] / surface["net"])

        res["surfaces"][id] = dict(
            heatloss    = surface["heatloss"],
            r_heatloss  = surface.get("r_heatloss", 0.0),
            ratio       = -(r0 - r1) * 100 / r0 if r0 > CN.RMIN else 0.0,
            u_requested = 1 / (r0 - surface["r"] + de),
            u_realized  = 1 / r1,
            index       = index,
            layer       = m,
            r           = ua.rsi([m]),
            edges       = surface.get("edges", dict()),
            pts         = surface.get("pts", dict()),
            construction = surface.get("construction", ""))

    return res
