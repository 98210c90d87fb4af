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
from .topolys import CN

# Uprating: "all" construction options, per surface group.
_alls = dict(wall  = "all wall constructions",
             roof  = "all roof constructions",
             floor = "all floor constructions")


def insulatingLayer(layers=[]) -> dict:
    """Identifies a multilayered assembly's (opaque) insulating layer: the
    most resistive layer, either massless ("r") or standard ("k" & "d").
    Standard layers thinner than 3mm, or more conductive than 3 W/m.K, are
    ignored.

    Args:
        layers (list):
            Assembly layers (outside to inside), each a dictionary holding
            either a thermal resistance "r" (m2.K/W), or both a thermal
            conductivity "k" (W/m.K) and a thickness "d" (m).

    Returns:
        An insulating-layer dictionary:
            - "index" (int): insulating layer index [0, n layers)
            - "type" (str): layer material type ("standard" or "massless")
            - "r" (float): material thermal resistance in m2.K/W.
        If unsuccessful, dictionary is voided as follows (see logs):
            "index": None
            "type": None
            "r": 0.0

    """
    mth = "tbd.insulatingLayer"
    res = dict(index=None, type=None, r=0.0)

    if not isinstance(layers, (list, tuple)):
        return oslg.mismatch("layers", layers, list, mth, CN.DBG, res)

    for i, l in enumerate(layers):
        if not isinstance(l, dict): continue

        try:
            if "r" in l:
                r = float(l["r"])
                if r < CN.RMIN or r < res["r"]: continue

                res["r"    ] = r
                res["index"] = i
                res["type" ] = "massless"
            elif "k" in l and "d" in l:
                k = float(l["k"])
                d = float(l["d"])
                if d < CN.DMIN or k > CN.KMAX or d / k < res["r"]: continue

                res["r"    ] = d / k
                res["index"] = i
                res["type" ] = "standard"
        except (ValueError, TypeError, ZeroDivisionError):
            oslg.invalid("layer %d" % i, mth, 1, CN.ERR)

    return res


def rsi(layers=[], film=0.0) -> float:
    """Returns an assembly's total thermal resistance (m2.K/W), films included.

    Returns:
        float: Assembly RSi.
        0.0: If invalid inputs (see logs).

    """
    mth = "tbd.rsi"
    res = 0.0

    if not isinstance(layers, (list, tuple)):
        return oslg.mismatch("layers", layers, list, mth, CN.DBG, res)

    try:
        res = float(film)
    except (ValueError, TypeError):
        return oslg.mismatch("film", film, float, mth, CN.DBG, 0.0)

    for l in layers:
        if "r" in l:
            res += float(l["r"])
        elif "k" in l and "d" in l:
            res += float(l["d"]) / float(l["k"])

    return res


def _bounded(ltype="", k=0.0, r=0.0, u=0.0, area=0.0) -> dict:
    """Returns a new insulating layer matching a requested RSi 'r', within
    physical bounds: massless RSi >= 0.001, standard thickness >= 3mm &
    conductivity <= 3 W/m.K. Any conductance (W/K) the bounded layer can't
    represent, given the requested layer USi 'u' over an 'area', is returned
    as residual "loss".
    """
    loss = 0.0

    if ltype == "massless":
        if r <= CN.RMIN:
            r    = CN.RMIN
            loss = (u - 1 / r) * area

        return dict(m=dict(r=r), loss=loss)

    if r > CN.RMIN:
        d = r * k

        if d <= CN.DMIN:
            d = CN.DMIN
            k = d / r

            if k >= CN.KMAX:
                k    = CN.KMAX
                loss = (u - k / d) * area
    else:
        d = CN.RMIN * k

        if d <= CN.DMIN:
            d = CN.DMIN
            k = d / CN.RMIN

        loss = (u - k / d) * area

    return dict(m=dict(k=k, d=d), loss=loss)


def derate(id="", s=dict(), lyr=dict()):
    """Derates a surface's insulating layer, given its thermal bridging heat
    loss: the derated layer USi is the sum of its initial USi and the surface
    heat loss per net area. Bounded (unrepresented) heat loss is logged, and
    stored in "r_heatloss".

    Args:
        id (str):
            Surface identifier.
        s (dict):
            TBD surface, with "heatloss", "net", "ltype", "index" & "r" keys.
        lyr (dict):
            Current insulating layer, "r" (massless) or "k" & "d" (standard).

    Returns:
        dict: Derated insulating layer ("r", or "k" & "d").
        None: If invalid inputs (see logs).

    """
    mth = "tbd.derate"
    id  = str(id).strip()

    if not id:
        oslg.empty("id", mth, CN.DBG)
        return None

    if not isinstance(s, dict):
        return oslg.mismatch("%s surface" % id, s, dict, mth, CN.DBG, None)
    if not isinstance(lyr, dict):
        return oslg.mismatch("%s layer" % id, lyr, dict, mth, CN.DBG, None)

    for k in ("heatloss", "net", "ltype", "index", "r"):
        tag = "%s %s" % (id, k)

        if k not in s: return oslg.hashkey(tag, s, k, mth, CN.ERR, None)

        if k == "ltype":
            if s[k] not in ("massless", "standard"):
                return oslg.invalid(tag, mth, 2, CN.ERR, None)

            continue

        try:
            val = float(s[k])
        except (ValueError, TypeError):
            return oslg.mismatch(tag, s[k], float, mth, CN.DBG, None)

        if k == "heatloss":
            if abs(val) < CN.RMIN: return oslg.zero(tag, mth, CN.WRN, None)
        elif val < 0:
            return oslg.negative(tag, mth, CN.ERR, None)
        elif k != "index" and abs(val) < CN.RMIN:
            return oslg.zero(tag, mth, CN.WRN, None)

    if s["ltype"] == "standard" and "k" not in lyr:
        return oslg.hashkey("%s layer" % id, lyr, "k", mth, CN.ERR, None)

    net  = float(s["net"])
    r    = float(s["r"])
    u    = float(s["heatloss"]) / net
    de_u = 1 / r + u # derated U
    de_r = 1 / de_u  # derated R
    k    = float(lyr.get("k", 0))
    res  = _bounded(s["ltype"], k, de_r, de_u, net)

    if res["loss"] > CN.TOL:
        s["r_heatloss"] = res["loss"]
        m = "Won't assign %.3f W/K to '%s': too conductive" % (res["loss"], id)
        oslg.log(CN.WRN, "%s (%s)" % (m, mth))

    return res["m"]


def uo(id="", layers=[], hloss=0.0, film=0.0, ut=0.0, area=0.0) -> dict:
    """Calculates the assembly Uo factor (and new insulating layer) required to
    meet a target Ut, once thermal bridging heat loss is factored in.

    Args:
        id (str):
            Assembly (construction) identifier.
        layers (list):
            Assembly layers (see 'insulatingLayer').
        hloss (float):
            Thermal bridging heat loss (W/K) of surfaces sharing the assembly.
        film (float):
            Air film resistances (m2.K/W).
        ut (float):
            Target overall U-factor (W/m2.K), bridging included.
        area (float):
            Net area (m2) of surfaces sharing the assembly.

    Returns:
        A dictionary:
            - "uo" (float): Uo factor (W/m2.K), bridging excluded
            - "m" (dict): uprated insulating layer ("r", or "k" & "d")
            - "index" (int): insulating layer index
        If unsuccessful, "uo" & "m" are None (see logs).

    """
    mth = "tbd.uo"
    res = dict(uo=None, m=None, index=None)
    id  = str(id).strip()

    if not id:
        oslg.empty("id", mth, CN.DBG)
        return res

    for tag, val in (("hloss", hloss), ("film", film), ("Ut", ut), ("area", area)):
        if not isinstance(val, (int, float)):
            return oslg.mismatch(tag, val, float, mth, CN.DBG, res)

    lyr = insulatingLayer(layers)

    if lyr["index"] is None:
        return oslg.invalid("%s layer index" % id, mth, 2, CN.ERR, res)

    if hloss <= CN.TOL: return oslg.zero("%s: heatloss" % id, mth, CN.WRN, res)
    if film  <= CN.TOL: return oslg.zero("%s: films" % id, mth, CN.WRN, res)
    if ut    <= CN.TOL: return oslg.zero("%s: Ut" % id, mth, CN.WRN, res)
    if ut >= CN.UMAX: return oslg.invalid("%s: Ut" % id, mth, 5, CN.WRN, res)
    if area  <= CN.TOL: return oslg.zero("%s: net area (m2)" % id, mth, CN.ERR, res)

    # Initial layer RSi to meet Ut, then uprated to counter bridging.
    rt    = 1 / ut
    ro    = rsi(layers, film)
    new_r = lyr["r"] + (rt - ro)

    if new_r <= CN.RMIN:
        return oslg.zero("%s: new Rsi" % id, mth, CN.ERR, res)

    new_u = 1 / new_r - hloss / area

    if new_u <= 0:
        return oslg.zero("%s: new Usi" % id, mth, CN.ERR, res)

    new_r = 1 / new_u

    if new_r <= CN.RMIN:
        return oslg.zero("%s: new Rsi" % id, mth, CN.ERR, res)

    k   = float(layers[lyr["index"]].get("k", 0))
    lay = _bounded(lyr["type"], k, new_r, new_u, area)
    lys = list(layers)
    lys[lyr["index"]] = lay["m"]

    if lay["loss"] > CN.TOL:
        m = "Can't assign %.3f W/K to %s" % (lay["loss"], id)
        return oslg.invalid(m, mth, 0, CN.ERR, res)

    res["uo"   ] = 1 / rsi(lys, film)
    res["m"    ] = lay["m"]
    res["index"] = lyr["index"]

    return res


def uprate(s=dict(), argh=dict()) -> bool:
    """Uprates insulating layers of deratable wall, roof and/or floor
    assemblies, to meet target Ut factors (bridging included). Targeted
    surfaces are either those of a named construction, or all deratable
    surfaces of a type (e.g. "all wall constructions"). In the latter case,
    the assembly covering the largest area is retained, and reassigned to
    every targeted surface. Achieved Uo factors are stored as "wall_uo",
    "roof_uo" & "floor_uo" argh keys.

    Args:
        s (dict):
            TBD surfaces, with "construction", "layers", "film", "index",
            "ltype", "r" & "heatloss" keys.
        argh (dict):
            TBD arguments ("uprate_walls", "wall_ut", "wall_option", etc.).

    Returns:
        bool: Whether successful.
        False: If invalid inputs (see logs).

    """
    mth = "tbd.uprate"

    if not isinstance(s, dict):
        return oslg.mismatch("surfaces", s, dict, mth, CN.DBG, False)
    if not isinstance(argh, dict):
        return oslg.mismatch("argh", argh, dict, mth, CN.DBG, False)

    for group in ("wall", "roof", "floor"):
        up  = argh.get("uprate_%ss" % group, False)
        ut  = argh.get("%s_ut" % group, CN.UMAX)
        op  = str(argh.get("%s_option" % group, "")).strip()
        typ = "ceiling" if group == "roof" else group

        if not up: continue
        if not isinstance(ut, (int, float)): continue
        if ut < 0 or ut >= CN.UMAX: continue

        if not op:
            oslg.log(CN.ERR, "Construction (%s) to uprate? (%s)" % (group, mth))
            continue

        coll = dict()

        for nom, surface in s.items():
            if not surface.get("deratable", False): continue
            if surface.get("type") != typ: continue
            if surface.get("index") is None: continue
            if "construction" not in surface: continue

            c = surface["construction"]

            if op.lower() == _alls[group] or c == op:
                if c not in coll: coll[c] = dict(area=0.0, s=[])

                coll[c]["area"] += surface.get("net", 0.0)
                coll[c]["s"   ].append(nom)

        if not coll:
            oslg.log(CN.ERR, "No %s construction to uprate (%s)" % (group, mth))
            continue

        # Retain the construction covering the largest area.
        id     = max(coll, key=lambda c: coll[c]["area"])
        noms   = [nom for c in coll.values() for nom in c["s"]]
        layers = s[coll[id]["s"][0]]["layers"]
        film   = min([s[nom].get("film", 0.0) for nom in noms])
        hloss  = sum([s[nom].get("heatloss", 0.0) for nom in noms])
        area   = sum([s[nom].get("net", 0.0) for nom in noms])
        res    = uo(id, layers, hloss, film, ut, area)

        if res["uo"] is None:
            oslg.log(CN.ERR, "Unable to uprate '%s' (%s)" % (id, mth))
            continue

        m   = res["m"]
        lys = list(layers)
        lys[res["index"]] = m
        lt  = "massless" if "r" in m else "standard"
        r   = m["r"] if "r" in m else m["d"] / m["k"]

        for nom in noms:
            if s[nom]["construction"] != id:
                oslg.log(CN.WRN, "Reassigning '%s' to '%s' (%s)" % (nom, id, mth))

            s[nom]["construction"] = id
            s[nom]["layers"      ] = list(lys)
            s[nom]["index"       ] = res["index"]
            s[nom]["ltype"       ] = lt
            s[nom]["r"           ] = r

        argh["%s_uo" % group] = res["uo"]

    return True
